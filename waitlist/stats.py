"""
Waitlist Statistics

Aggregates shown on the admin dashboard: signup totals, city spread, bike
ownership and recent signup volume.
"""

import logging
from typing import Dict, List, Optional, Any, Mapping, Sequence, Tuple
from datetime import datetime, timedelta, timezone
from dataclasses import dataclass, field, asdict

from .export.filters import to_timestamp

logger = logging.getLogger(__name__)

TOP_CITIES_LIMIT = 5
RECENT_WINDOW_DAYS = 7


@dataclass
class WaitlistStats:
    """Dashboard summary of the waitlist."""

    total_signups: int = 0
    cities_count: int = 0
    bike_owners: int = 0
    planning_bike: int = 0
    recent_signups: int = 0
    top_cities: List[Tuple[str, int]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['top_cities'] = [{'city': city, 'count': count} for city, count in self.top_cities]
        return data


def calculate_waitlist_stats(entries: Sequence[Mapping[str, Any]],
                             now: Optional[datetime] = None) -> WaitlistStats:
    """
    Compute dashboard statistics for a list of waitlist entries.

    Args:
        entries: Waitlist rows with ``city``, ``bike_ownership`` and ``created_at``
        now: Reference time for the recent-signups window

    Returns:
        WaitlistStats
    """
    now = now or datetime.now(timezone.utc)
    cutoff = to_timestamp(now - timedelta(days=RECENT_WINDOW_DAYS))

    city_counts: Dict[str, int] = {}
    bike_owners = planning_bike = recent = 0

    for entry in entries:
        city = entry.get('city')
        city_counts[city] = city_counts.get(city, 0) + 1

        ownership = entry.get('bike_ownership')
        if ownership == 'yes':
            bike_owners += 1
        elif ownership == 'planning':
            planning_bike += 1

        created_at = to_timestamp(entry.get('created_at'))
        if created_at is not None and created_at >= cutoff:
            recent += 1

    # sorted() is stable, so equal counts keep first-seen order
    top_cities = sorted(city_counts.items(), key=lambda item: item[1], reverse=True)[:TOP_CITIES_LIMIT]

    stats = WaitlistStats(
        total_signups=len(entries),
        cities_count=len(city_counts),
        bike_owners=bike_owners,
        planning_bike=planning_bike,
        recent_signups=recent,
        top_cities=top_cities,
    )
    logger.debug(f"Waitlist stats: {stats.total_signups} signups across {stats.cities_count} cities")
    return stats

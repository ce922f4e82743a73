"""
Field Introspection and Projection

Helpers that decide which columns an export contains and narrow records to
those columns.
"""

from typing import Dict, List, Any, Iterable, Mapping, Sequence


def get_available_fields(records: Sequence[Mapping[str, Any]]) -> List[str]:
    """
    Get the exportable fields of a record set.

    Only the first record is inspected; its key order becomes the canonical
    column order for the whole set.

    Args:
        records: Records to inspect

    Returns:
        Field names of the first record, or an empty list for no records
    """
    if not records:
        return []
    return list(records[0].keys())


def project_record(record: Mapping[str, Any], fields: Iterable[str]) -> Dict[str, Any]:
    """
    Narrow a record to the requested fields.

    Fields keep the requested order. Requested fields missing from the
    record are left out, not filled with placeholders.
    """
    return {name: record[name] for name in fields if name in record}


def project_records(records: Iterable[Mapping[str, Any]], fields: Sequence[str]) -> List[Dict[str, Any]]:
    """Apply project_record to every record. Input records are not modified."""
    return [project_record(record, fields) for record in records]


def format_field_name(field_name: str) -> str:
    """Turn a snake_case field name into a display label ("bike_ownership" -> "Bike Ownership")."""
    return " ".join(word[:1].upper() + word[1:] for word in field_name.split("_"))

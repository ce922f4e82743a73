"""
MOVRR Waitlist Admin Tools

Reporting and data export for the pre-launch waitlist: dashboard statistics
over signups and multi-format exports of any tabular record set.

Quick Start:
    from waitlist.export import ExportOptions, export_data

    artifact = export_data(entries, ExportOptions(format="xlsx", filename="waitlist"))
    artifact.save("exports")
"""

__version__ = "1.0.0"

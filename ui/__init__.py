"""UI layer -- Rich dashboard and output formatters."""

from .dashboard import (
    console,
    metrics_table,
    print_header,
    print_snapshot,
    render_snapshot,
    tier_style,
    timeline_chart,
)
from .output import (
    create_snapshot_json,
    format_csv_header,
    format_csv_row,
    format_text_result,
    save_json,
)

__all__ = [
    "console",
    "create_snapshot_json",
    "format_csv_header",
    "format_csv_row",
    "format_text_result",
    "metrics_table",
    "print_header",
    "print_snapshot",
    "render_snapshot",
    "save_json",
    "tier_style",
    "timeline_chart",
]

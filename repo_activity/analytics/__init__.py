"""Pure aggregation of canonical activity records into snapshots and rollups."""

from .aggregator import analyze_data
from .contributors import roll_up_contributors

__all__ = ["analyze_data", "roll_up_contributors"]

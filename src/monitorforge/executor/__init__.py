"""Query executors, one per query shape."""

from monitorforge.executor.base import UNIT_MAPPINGS, QueryExecutor, check_cancelled
from monitorforge.executor.time_series_filter import SloExecutor, TimeSeriesFilterExecutor
from monitorforge.executor.time_series_query import TimeSeriesQueryExecutor

__all__ = [
    "UNIT_MAPPINGS",
    "QueryExecutor",
    "SloExecutor",
    "TimeSeriesFilterExecutor",
    "TimeSeriesQueryExecutor",
    "check_cancelled",
]

"""System log time-series extraction engine."""

from systemlog_series.engine import SystemLogReport, parse_system_log
from systemlog_series.models import ParsedTimeSeries
from systemlog_series.settings import ExtractionSettings

__all__ = ["ExtractionSettings", "ParsedTimeSeries", "SystemLogReport", "parse_system_log"]

__version__ = "1.0.0"

"""Utility modules for the POLR parameter server."""

from polr_ps.utils.config import POLRConfig
from polr_ps.utils.logging import POLRLogger, MetricsLogger, get_logger

__all__ = ["POLRConfig", "POLRLogger", "MetricsLogger", "get_logger"]

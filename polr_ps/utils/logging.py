"""Logging utilities shared by the master and worker drivers."""

import logging
import os
import socket
import sys
import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterator, Optional


class POLRLogger:
    """
    Thread-safe logger for master and worker components.

    One instance exists per component name, so every driver that asks for
    "master" or "worker_0" shares handlers and level. Lines carry the host
    and process id because workers usually run in separate processes.
    """

    _instances: Dict[str, "POLRLogger"] = {}
    _lock = threading.Lock()

    def __new__(cls, name: str, *args, **kwargs):
        with cls._lock:
            if name not in cls._instances:
                cls._instances[name] = super().__new__(cls)
            return cls._instances[name]

    def __init__(
        self,
        name: str,
        level: int = logging.INFO,
        log_file: Optional[str] = None,
        include_hostname: bool = True
    ):
        """
        Initialize the logger.

        Args:
            name: Component name (e.g. "master", "worker_1")
            level: Logging level
            log_file: Optional file path for log output
            include_hostname: Prefix messages with host:pid
        """
        if hasattr(self, "_initialized"):
            return

        self._initialized = True
        self.name = name
        self.hostname = socket.gethostname()
        self.pid = os.getpid()

        self.logger = logging.getLogger(f"polr_ps.{name}")
        self.logger.setLevel(level)
        self.logger.propagate = False
        self.logger.handlers = []

        if include_hostname:
            fmt = f"%(asctime)s | {self.hostname}:{self.pid} | %(name)s | %(levelname)s | %(message)s"
        else:
            fmt = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
        formatter = logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S")

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

    def debug(self, msg: str, *args, **kwargs):
        self.logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self.logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self.logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self.logger.error(msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        """Log exception with traceback."""
        self.logger.exception(msg, *args, **kwargs)

    def set_level(self, level: int):
        """Set logging level on the logger and all its handlers."""
        self.logger.setLevel(level)
        for handler in self.logger.handlers:
            handler.setLevel(level)


def get_logger(name: str, level: int = logging.INFO) -> POLRLogger:
    """
    Get a logger instance for the given component name.

    Args:
        name: Component name (e.g., "master", "worker_0", "runner")
        level: Logging level

    Returns:
        POLRLogger instance
    """
    return POLRLogger(name, level=level)


class MetricsLogger:
    """
    Collects count/sum/min/max per metric for a component.

    Used for per-round aggregation timings and batch sizes.
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = get_logger(f"metrics.{name}")
        self._metrics: Dict[str, Dict[str, float]] = {}
        self._lock = threading.Lock()

    def record(self, metric_name: str, value: float):
        """Record one observation of a metric."""
        with self._lock:
            m = self._metrics.setdefault(metric_name, {
                "count": 0,
                "sum": 0.0,
                "min": float("inf"),
                "max": float("-inf"),
            })
            m["count"] += 1
            m["sum"] += value
            m["min"] = min(m["min"], value)
            m["max"] = max(m["max"], value)

    @contextmanager
    def timer(self, metric_name: str) -> Iterator[None]:
        """Record the wall time of the enclosed block in seconds."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record(metric_name, time.perf_counter() - start)

    def get_stats(self, metric_name: str) -> Dict[str, float]:
        """Get statistics for a metric, or an empty dict if never recorded."""
        with self._lock:
            m = self._metrics.get(metric_name)
            if m is None:
                return {}
            count = m["count"]
            return {
                "count": count,
                "sum": m["sum"],
                "mean": m["sum"] / count,
                "min": m["min"],
                "max": m["max"],
            }

    def get_all_stats(self) -> Dict[str, Dict[str, float]]:
        with self._lock:
            names = list(self._metrics)
        return {name: self.get_stats(name) for name in names}

    def log_stats(self):
        """Log all metric statistics at INFO."""
        for name, s in self.get_all_stats().items():
            self.logger.info(
                f"{name}: count={s['count']}, mean={s['mean']:.4f}, "
                f"min={s['min']:.4f}, max={s['max']:.4f}"
            )

    def reset(self):
        with self._lock:
            self._metrics.clear()

"""
POLR Parameter Server - synchronous data-parallel training of an online
logistic regression classifier.

This package provides:
- POLRMasterDriver: aggregates one gradient per worker per round
- POLRWorkerDriver: trains a local model on one input split
- POLRTrainingRun: threaded master/worker orchestration
- POLRConfig: configuration shared by master and workers
"""

from polr_ps.utils.config import POLRConfig
from polr_ps.driver.master_driver import POLRMasterDriver
from polr_ps.driver.worker_driver import POLRWorkerDriver
from polr_ps.driver.runner import POLRTrainingRun

__version__ = "0.1.0"
__all__ = ["POLRMasterDriver", "POLRWorkerDriver", "POLRTrainingRun", "POLRConfig"]

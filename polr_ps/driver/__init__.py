"""Master and worker drivers for the synchronous gradient protocol."""

from polr_ps.driver.master_driver import POLRMasterDriver, RoundState
from polr_ps.driver.worker_driver import POLRWorkerDriver
from polr_ps.driver.runner import POLRTrainingRun, TrainingResult

__all__ = [
    "POLRMasterDriver",
    "RoundState",
    "POLRWorkerDriver",
    "POLRTrainingRun",
    "TrainingResult",
]

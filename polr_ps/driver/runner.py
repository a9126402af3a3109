"""Threaded orchestration of one master and several workers."""

import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from polr_ps.communication.queues import BroadcastQueue
from polr_ps.driver.master_driver import POLRMasterDriver
from polr_ps.driver.worker_driver import POLRWorkerDriver
from polr_ps.exceptions import ConfigurationError, QueueUnderflowError
from polr_ps.io.input_split import InputRecordsSplit, compute_splits
from polr_ps.model.parameter_vector import ParameterVector
from polr_ps.storage.checkpoint import LocalCheckpointManager
from polr_ps.utils.config import POLRConfig
from polr_ps.utils.logging import get_logger


@dataclass
class TrainingResult:
    """Outcome of a completed training run."""

    rounds_completed: int
    final_vector: ParameterVector
    worker_vectors: Dict[str, ParameterVector] = field(default_factory=dict)
    worker_stats: List[Dict[str, Any]] = field(default_factory=list)
    master_stats: Dict[str, Any] = field(default_factory=dict)
    checkpoint_path: Optional[str] = None
    training_time_seconds: float = 0.0


class POLRTrainingRun:
    """
    Runs the synchronous protocol with one thread per worker.

    Each worker thread loops: train a batch, enqueue its gradient message,
    block on its own BroadcastQueue, apply the broadcast. The master loop
    (in the calling thread) blocks until exactly one message per worker has
    been folded, aggregates, and puts the result on every BroadcastQueue.
    No worker can start round r+1 before applying broadcast r.

    Any failure closes every queue, so blocked threads wake up, and the
    first error is re-raised from ``run``.
    """

    POLL_SECONDS = 0.5

    def __init__(
        self,
        config: POLRConfig,
        readers: Sequence[InputRecordsSplit],
        worker_ids: Optional[Sequence[str]] = None
    ):
        """
        Args:
            config: Shared configuration
            readers: One input split reader per worker
            worker_ids: Worker identifiers (defaults to "0", "1", ...)
        """
        if not readers:
            raise ConfigurationError("At least one input split reader is required")
        worker_ids = list(worker_ids) if worker_ids is not None else [str(i) for i in range(len(readers))]
        if len(worker_ids) != len(readers):
            raise ConfigurationError("worker_ids and readers must have the same length")
        if len(set(worker_ids)) != len(worker_ids):
            raise ConfigurationError("worker_ids must be unique")

        self.config = config
        self.logger = get_logger("runner")
        self._readers = list(readers)
        self._owns_readers = False

        self.master = POLRMasterDriver()
        self.workers: List[POLRWorkerDriver] = []
        for worker_id, reader in zip(worker_ids, readers):
            worker = POLRWorkerDriver(worker_id)
            worker.setup_input_split(reader)
            self.workers.append(worker)
        self._broadcast_queues = {
            w.worker_id: BroadcastQueue(f"broadcast_{w.worker_id}") for w in self.workers
        }

    @classmethod
    def from_file(cls, config: POLRConfig, path: str, num_workers: int) -> "POLRTrainingRun":
        """Split one input file into ``num_workers`` byte ranges."""
        splits = compute_splits(path, num_workers)
        if len(splits) < num_workers:
            raise ConfigurationError(
                f"{path} is too small for {num_workers} splits"
            )
        run = cls(config, [InputRecordsSplit(s) for s in splits])
        run._owns_readers = True
        return run

    def _setup(self, resume: bool) -> Optional[str]:
        """Set up master and workers; returns the checkpoint resumed from, if any."""
        self.master.setup(self.config, len(self.workers))
        for worker in self.workers:
            worker.setup(self.config)

        if not (resume and self.config.checkpoint_dir):
            return None
        manager = LocalCheckpointManager(self.config.checkpoint_dir)
        checkpoints = manager.list_checkpoints()
        if not checkpoints:
            return None

        checkpoint = manager.load(checkpoints[0]["path"])
        next_round = checkpoint["round_id"] + 1
        positions = checkpoint["metadata"].get("workers") or {}
        for worker in self.workers:
            worker.restore(checkpoint["vector"], next_round, positions.get(worker.worker_id))
        exhausted = (
            self.config.end_of_data_policy == "stop"
            and all(w.worker_id in positions for w in self.workers)
            and all(w.end_of_data for w in self.workers)
        )
        self.master.restore(checkpoint["vector"], next_round, finished=exhausted)
        return checkpoints[0]["path"]

    def _worker_loop(self, worker: POLRWorkerDriver):
        queue = self._broadcast_queues[worker.worker_id]
        timeout = self.config.receive_timeout_seconds
        while True:
            worker.run_next_training_batch()
            self.master.add_incoming_gradient_message_to_queue(worker.generate_update_message())
            msg = queue.get(block=True, timeout=timeout)
            worker.process_incoming_parameter_vector_message(msg)
            if msg.is_final:
                return worker.get_stats()

    def _receive(self, futures: List[Future]):
        """Blocking receive that surfaces worker failures while waiting."""
        deadline = time.monotonic() + self.config.receive_timeout_seconds
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise QueueUnderflowError(
                    f"No gradient message within {self.config.receive_timeout_seconds}s "
                    f"in round {self.master.round_id}"
                )
            try:
                return self.master.recv_gradient_message(
                    block=True, timeout=min(self.POLL_SECONDS, remaining)
                )
            except QueueUnderflowError:
                for future in futures:
                    if future.done() and future.exception() is not None:
                        raise future.exception()

    def _close_queues(self):
        self.master.gradient_queue.close()
        for queue in self._broadcast_queues.values():
            queue.close()

    def run(self, resume: bool = False) -> TrainingResult:
        """
        Train until a final broadcast.

        Args:
            resume: Start from the newest checkpoint in config.checkpoint_dir

        Returns:
            TrainingResult with the final vectors and statistics
        """
        start = time.time()
        num_workers = len(self.workers)

        executor = ThreadPoolExecutor(max_workers=num_workers, thread_name_prefix="polr-worker")
        try:
            resumed_from = self._setup(resume)
            if self.master.is_finished:
                self.logger.info(
                    f"Checkpoint at round {self.master.round_id - 1} is already final; "
                    f"nothing to train"
                )
                worker_stats = [w.get_stats() for w in self.workers]
            else:
                futures = [executor.submit(self._worker_loop, w) for w in self.workers]
                while not self.master.is_finished:
                    for _ in range(num_workers):
                        self._receive(futures)
                    self.master.generate_global_update_vector()
                    self.master.broadcast(self._broadcast_queues.values())
                worker_stats = [f.result() for f in futures]
        except BaseException:
            self._close_queues()
            raise
        finally:
            executor.shutdown(wait=True)
            for worker in self.workers:
                worker.close()
            if self._owns_readers:
                for reader in self._readers:
                    reader.close()

        final_vector = self.master.global_vector
        rounds = self.master.get_stats()["rounds_completed"]
        elapsed = time.time() - start

        checkpoint_path = resumed_from
        if self.config.checkpoint_dir and rounds > 0:
            manager = LocalCheckpointManager(self.config.checkpoint_dir)
            checkpoint_path = manager.save(
                final_vector,
                self.master.round_id - 1,
                self.config.to_dict(),
                metadata={
                    "num_workers": num_workers,
                    "workers": {w.worker_id: w.position() for w in self.workers},
                },
            )

        self.master.metrics.log_stats()
        self.logger.info(
            f"Training finished: {rounds} rounds, {num_workers} workers, {elapsed:.2f}s"
        )
        return TrainingResult(
            rounds_completed=rounds,
            final_vector=final_vector,
            worker_vectors={w.worker_id: w.vector for w in self.workers},
            worker_stats=worker_stats,
            master_stats=self.master.get_stats(),
            checkpoint_path=checkpoint_path,
            training_time_seconds=elapsed,
        )

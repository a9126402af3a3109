"""Master side of the synchronous gradient protocol."""

import threading
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from polr_ps.communication.protocol import (
    GlobalParameterVectorUpdateMessage,
    GradientUpdateMessage,
)
from polr_ps.communication.queues import BroadcastQueue, GradientQueue
from polr_ps.exceptions import (
    ConfigurationError,
    DimensionMismatchError,
    DuplicateGradientError,
    IncompleteRoundError,
    ProtocolError,
    StaleGradientError,
)
from polr_ps.model.parameter_vector import ParameterVector
from polr_ps.utils.config import POLRConfig
from polr_ps.utils.logging import MetricsLogger, get_logger


class RoundState(Enum):
    """Master round lifecycle."""

    COLLECTING = "collecting"
    AGGREGATING = "aggregating"
    BROADCASTING = "broadcasting"
    FINISHED = "finished"


class POLRMasterDriver:
    """
    Aggregates worker gradients into the authoritative parameter vector.

    Each round the master folds exactly one GradientUpdateMessage per
    expected worker, then ``generate_global_update_vector`` applies the
    batch-size-weighted mean of their deltas:

        global += sum_i(n_i * delta_i) / sum_i(n_i)

    Deltas are summed in sorted worker-id order, so the result does not
    depend on arrival order. A round in which every worker observed zero
    records leaves the vector unchanged.

    Queue operations, folding and aggregation share one lock; any number
    of worker threads may enqueue concurrently.
    """

    def __init__(self):
        self.config: Optional[POLRConfig] = None
        self.num_workers = 0

        self.logger = get_logger("master")
        self.metrics = MetricsLogger("master")

        self._lock = threading.RLock()
        self._queue = GradientQueue("master_gradients")
        self._global: Optional[ParameterVector] = None
        self._pending: Dict[str, GradientUpdateMessage] = {}

        self._round_id = 0
        self._state = RoundState.COLLECTING
        self._broadcast_snapshot: Optional[ParameterVector] = None
        self._broadcast_round: Optional[int] = None
        self._broadcast_final = False

        # Statistics
        self._stats = {
            "rounds_completed": 0,
            "messages_folded": 0,
            "records_aggregated": 0,
        }

    def setup(self, config: POLRConfig, num_workers: int):
        """
        Allocate the global vector and record the expected worker count.

        Args:
            config: Shared configuration (same layout fields as the workers)
            num_workers: Workers that must report every round

        Raises:
            ConfigurationError: for invalid settings
        """
        config.validate()
        if isinstance(num_workers, bool) or not isinstance(num_workers, int) or num_workers < 1:
            raise ConfigurationError(f"num_workers must be a positive integer, got {num_workers!r}")

        with self._lock:
            if config.init_strategy == "normal":
                self._global = ParameterVector.normal(
                    config.vector_length, config.init_scale, config.seed
                )
            else:
                self._global = ParameterVector.zeros(config.vector_length)
            self.config = config
            self.num_workers = num_workers
            self._pending.clear()
            self._round_id = 0
            self._state = RoundState.COLLECTING

        self.logger.info(
            f"Master ready: vector_length={config.vector_length}, "
            f"num_workers={num_workers}, num_rounds={config.num_rounds or 'until data exhausted'}"
        )

    def _require_setup(self):
        if self._global is None:
            raise ProtocolError("Master setup() must be called first")

    @property
    def gradient_queue(self) -> GradientQueue:
        return self._queue

    @property
    def round_id(self) -> int:
        """Round currently being collected."""
        with self._lock:
            return self._round_id

    @property
    def state(self) -> RoundState:
        with self._lock:
            return self._state

    @property
    def pending_count(self) -> int:
        """Messages folded into the current round."""
        with self._lock:
            return len(self._pending)

    @property
    def is_finished(self) -> bool:
        with self._lock:
            return self._state == RoundState.FINISHED

    @property
    def global_vector(self) -> ParameterVector:
        """Immutable snapshot of the authoritative vector."""
        with self._lock:
            self._require_setup()
            return self._global.snapshot()

    def add_incoming_gradient_message_to_queue(self, msg: GradientUpdateMessage):
        """Enqueue a worker's message; safe from any number of threads."""
        self._queue.put(msg)

    def recv_gradient_message(
        self,
        block: bool = False,
        timeout: Optional[float] = None
    ) -> GradientUpdateMessage:
        """
        Pop the oldest queued message and fold it into the current round.

        Args:
            block: Wait for a message instead of failing on an empty queue
            timeout: Maximum wait when blocking

        Returns:
            The folded message

        Raises:
            QueueUnderflowError: queue empty (or wait timed out)
            DimensionMismatchError: delta has the wrong length
            StaleGradientError: message tagged with another round
            DuplicateGradientError: worker already reported, or round full
        """
        self._require_setup()
        msg = self._queue.get(block=block, timeout=timeout)
        with self._lock:
            self._fold(msg)
        return msg

    def _fold(self, msg: GradientUpdateMessage):
        if self._state == RoundState.FINISHED:
            raise ProtocolError("Training run already finished")
        if len(msg.delta) != len(self._global):
            raise DimensionMismatchError(
                len(self._global), len(msg.delta),
                f"gradient from worker {msg.origin_worker_id}",
            )
        if msg.round_id != self._round_id:
            raise StaleGradientError(
                f"Worker {msg.origin_worker_id} sent round {msg.round_id}, "
                f"master is collecting round {self._round_id}"
            )
        if msg.origin_worker_id in self._pending:
            raise DuplicateGradientError(
                f"Worker {msg.origin_worker_id} already reported round {self._round_id}"
            )
        if len(self._pending) >= self.num_workers:
            raise DuplicateGradientError(
                f"Round {self._round_id} already has {self.num_workers} messages"
            )

        self._pending[msg.origin_worker_id] = msg
        self._stats["messages_folded"] += 1
        self._state = (
            RoundState.AGGREGATING
            if len(self._pending) == self.num_workers
            else RoundState.COLLECTING
        )

    def generate_global_update_vector(self) -> ParameterVector:
        """
        Apply the current round's aggregate to the global vector.

        Returns:
            Immutable snapshot of the updated global vector

        Raises:
            IncompleteRoundError: fewer than num_workers messages folded;
                the global vector is unchanged
        """
        with self._lock:
            self._require_setup()
            if len(self._pending) != self.num_workers:
                raise IncompleteRoundError(self._round_id, len(self._pending), self.num_workers)

            with self.metrics.timer("aggregate_seconds"):
                total_records = sum(m.observed_batch_size for m in self._pending.values())
                if total_records > 0:
                    aggregate = ParameterVector.zeros(len(self._global))
                    for worker_id in sorted(self._pending):
                        msg = self._pending[worker_id]
                        if msg.observed_batch_size:
                            aggregate.add_scaled(msg.delta, float(msg.observed_batch_size))
                    self._global.add_scaled(aggregate, 1.0 / total_records)

            all_exhausted = all(m.end_of_data for m in self._pending.values())
            aggregated_round = self._round_id

            self.metrics.record("records_per_round", total_records)
            self._stats["records_aggregated"] += total_records
            self._stats["rounds_completed"] += 1

            self._pending.clear()
            self._round_id += 1
            self._broadcast_snapshot = self._global.snapshot()
            self._broadcast_round = aggregated_round
            self._broadcast_final = all_exhausted or (
                self.config.num_rounds > 0 and self._round_id >= self.config.num_rounds
            )
            self._state = RoundState.BROADCASTING

        if total_records == 0:
            self.logger.warning(f"Round {aggregated_round}: no records observed, vector unchanged")
        interval = max(1, self.config.log_every_n_rounds)
        if self._broadcast_final or aggregated_round % interval == 0:
            self.logger.info(
                f"Round {aggregated_round} aggregated: records={total_records}, "
                f"norm={self._broadcast_snapshot.norm():.6f}, final={self._broadcast_final}"
            )
        return self._broadcast_snapshot

    def get_next_global_update_msg_from_queue(self) -> GlobalParameterVectorUpdateMessage:
        """
        Message carrying the vector as of the last aggregated round.

        May be called once per worker; every message wraps the same
        immutable snapshot.

        Raises:
            ProtocolError: before the first aggregation
        """
        with self._lock:
            if self._broadcast_snapshot is None:
                raise ProtocolError("No round has been aggregated yet")
            if self._state == RoundState.BROADCASTING:
                self._state = (
                    RoundState.FINISHED if self._broadcast_final else RoundState.COLLECTING
                )
            return GlobalParameterVectorUpdateMessage(
                vector=self._broadcast_snapshot,
                round_id=self._broadcast_round,
                is_final=self._broadcast_final,
            )

    def broadcast(self, queues: Iterable[BroadcastQueue]) -> GlobalParameterVectorUpdateMessage:
        """Put the latest global update on every worker's queue."""
        msg = self.get_next_global_update_msg_from_queue()
        for queue in queues:
            queue.put(msg)
        return msg

    def restore(self, vector: ParameterVector, round_id: int, finished: bool = False):
        """
        Resume from a checkpointed vector at the start of ``round_id``.

        The master comes back FINISHED when ``finished`` is set (every split
        was already exhausted) or when ``round_id`` has reached ``num_rounds``.

        Raises:
            DimensionMismatchError: vector length differs from the config
            ProtocolError: messages already folded into a round
        """
        with self._lock:
            self._require_setup()
            if self._pending:
                raise ProtocolError("Cannot restore while a round is being collected")
            self._global.assign(vector)
            self._round_id = round_id
            limit_reached = self.config.num_rounds > 0 and round_id >= self.config.num_rounds
            self._state = (
                RoundState.FINISHED if finished or limit_reached else RoundState.COLLECTING
            )
            state = self._state
        self.logger.info(f"Master restored at round {round_id} ({state.value})")

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "round_id": self._round_id,
                "state": self._state.value,
                "pending": len(self._pending),
                "queued": len(self._queue),
                **self._stats,
                "aggregate_seconds": self.metrics.get_stats("aggregate_seconds"),
            }

"""Worker side of the synchronous gradient protocol."""

from typing import Any, Dict, Iterable, Optional

from polr_ps.communication.protocol import (
    GlobalParameterVectorUpdateMessage,
    GradientUpdateMessage,
)
from polr_ps.exceptions import ConfigurationError, ProtocolError, RecordParseError
from polr_ps.io.input_split import InputRecordsSplit, InputSplit
from polr_ps.model.local_model import LocalModel, evaluate
from polr_ps.model.parameter_vector import ParameterVector
from polr_ps.optimizers import create_optimizer
from polr_ps.records import RecordFactory, create_record_factory
from polr_ps.utils.config import POLRConfig
from polr_ps.utils.logging import get_logger


class POLRWorkerDriver:
    """
    Runs one worker's training loop against its input split.

    Per round:
    - ``run_next_training_batch`` trains the local model on up to
      ``batch_size`` records
    - ``generate_update_message`` ships the net change since the last
      applied broadcast
    - ``process_incoming_parameter_vector_message`` overwrites local state
      with the master's vector before the next round

    The driver owns its LocalModel exclusively; nothing else mutates it.
    """

    def __init__(self, worker_id: str):
        """
        Args:
            worker_id: Identifier reported in every gradient message
        """
        self.worker_id = str(worker_id)
        self.config: Optional[POLRConfig] = None
        self.model: Optional[LocalModel] = None
        self.record_factory: Optional[RecordFactory] = None

        self.logger = get_logger(f"worker_{self.worker_id}")

        self._reader: Optional[InputRecordsSplit] = None
        self._owns_reader = False

        self.round_id = 0
        self.end_of_data = False
        self.is_finished = False

        # Statistics
        self._records_since_message = 0
        self._trained_since_reset = 0
        self._split_records: Optional[int] = None
        self._stats = {
            "batches_run": 0,
            "records_trained": 0,
            "records_skipped": 0,
            "passes": 0,
        }

    def setup_input_split(self, reader: InputRecordsSplit):
        """Attach the reader for this worker's split. May precede ``setup``."""
        self._reader = reader
        self._owns_reader = False

    def setup(self, config: POLRConfig):
        """
        Validate configuration and allocate the local model.

        Opens ``config.input_split_location`` unless a reader was attached
        with ``setup_input_split``.

        Raises:
            ConfigurationError: for missing or inconsistent settings
        """
        config.validate(require_input=self._reader is None)
        if not config.record_factory:
            raise ConfigurationError("record_factory is required")

        self.record_factory = create_record_factory(
            config.record_factory,
            config.feature_vector_size,
            config.num_categories,
        )

        if self._reader is None:
            self._reader = InputRecordsSplit(InputSplit.parse(config.input_split_location))
            self._owns_reader = True

        optimizer = create_optimizer(
            config.optimizer,
            learning_rate=config.learning_rate,
            weight_decay=config.lambda_,
        )
        if config.init_strategy == "normal":
            initial = ParameterVector.normal(config.vector_length, config.init_scale, config.seed)
        else:
            initial = ParameterVector.zeros(config.vector_length)

        self.model = LocalModel(
            config.feature_vector_size,
            config.num_categories,
            optimizer=optimizer,
            initial_vector=initial,
        )
        self.config = config

        self.logger.info(
            f"Worker {self.worker_id} ready: features={config.feature_vector_size}, "
            f"categories={config.num_categories}, batch_size={config.batch_size}, "
            f"split={self._reader.split}, policy={config.end_of_data_policy}"
        )

    def _require_setup(self):
        if self.model is None:
            raise ProtocolError(f"Worker {self.worker_id}: setup() must be called first")

    def _next_raw_record(self) -> Optional[str]:
        """Next line from the split, applying the end-of-data policy."""
        if self._reader.has_next():
            return self._reader.next()

        if self._split_records is None:
            self._split_records = self._reader.records_read
            if self._split_records < self.config.batch_size:
                self.logger.warning(
                    f"Split {self._reader.split} holds {self._split_records} records, "
                    f"fewer than batch_size {self.config.batch_size}"
                )

        if self.config.end_of_data_policy == "stop":
            self.end_of_data = True
            return None

        if self._trained_since_reset == 0:
            raise ConfigurationError(
                f"Split {self._reader.split} has no usable records to wrap around"
            )
        self._reader.reset()
        self._trained_since_reset = 0
        self._stats["passes"] += 1
        self.logger.debug(f"Worker {self.worker_id} rewound its split")
        return self._next_raw_record()

    def run_next_training_batch(self) -> bool:
        """
        Train on up to ``batch_size`` records from the split.

        Returns:
            False once the split is exhausted under the "stop" policy
        """
        self._require_setup()
        if self.end_of_data:
            return False

        trained = 0
        while trained < self.config.batch_size:
            raw = self._next_raw_record()
            if raw is None:
                break
            if not raw.strip():
                continue
            try:
                features, label = self.record_factory.parse(raw)
            except RecordParseError as e:
                self._stats["records_skipped"] += 1
                self.logger.warning(f"Worker {self.worker_id} skipped record: {e}")
                continue
            self.model.train(features, label)
            trained += 1
            self._trained_since_reset += 1

        self._records_since_message += trained
        self._stats["records_trained"] += trained
        self._stats["batches_run"] += 1

        if self.end_of_data:
            log = self.logger.warning if trained < self.config.batch_size else self.logger.info
            log(
                f"Worker {self.worker_id} reached end of split after "
                f"{self._stats['records_trained']} records (last batch {trained} "
                f"of {self.config.batch_size})"
            )
        return not self.end_of_data

    def generate_update_message(self) -> GradientUpdateMessage:
        """
        Package the change since the last applied broadcast and reset it.

        Calling this twice without training in between yields a zero delta.
        """
        self._require_setup()
        msg = GradientUpdateMessage(
            origin_worker_id=self.worker_id,
            delta=self.model.take_delta(),
            observed_batch_size=self._records_since_message,
            round_id=self.round_id,
            end_of_data=self.end_of_data,
        )
        self._records_since_message = 0
        return msg

    def process_incoming_parameter_vector_message(self, msg: GlobalParameterVectorUpdateMessage):
        """
        Replace local weights with the master's vector.

        Raises:
            DimensionMismatchError: if the vector length differs; local
                state is left untouched
            ProtocolError: if the broadcast is older than the last one applied
        """
        self._require_setup()
        if msg.round_id < self.round_id - 1:
            raise ProtocolError(
                f"Worker {self.worker_id} at round {self.round_id} received "
                f"broadcast for older round {msg.round_id}"
            )
        if msg.round_id != self.round_id:
            self.logger.warning(
                f"Worker {self.worker_id} at round {self.round_id} applied "
                f"broadcast for round {msg.round_id}"
            )
        self.model.apply_global_vector(msg.vector)
        self.round_id = msg.round_id + 1
        self.is_finished = msg.is_final

    def position(self) -> Dict[str, Any]:
        """Where this worker stands in its split, for checkpoint metadata."""
        return {
            "records_read": self._reader.records_read if self._reader is not None else 0,
            "trained_since_reset": self._trained_since_reset,
            "passes": self._stats["passes"],
            "end_of_data": self.end_of_data,
        }

    def restore(self, vector: ParameterVector, round_id: int,
                position: Optional[Dict[str, Any]] = None):
        """
        Resume from a checkpointed vector at the start of ``round_id``.

        With a ``position`` saved by :meth:`position`, the split reader is
        moved past the records already consumed; without one the split is
        replayed from its first record.
        """
        self._require_setup()
        self.model.apply_global_vector(vector)
        self.round_id = round_id
        if position is not None and self._reader is not None:
            self._reader.reset()
            self._reader.skip(int(position.get("records_read", 0)))
            self._trained_since_reset = int(position.get("trained_since_reset", 0))
            self._stats["passes"] = int(position.get("passes", 0))
            self.end_of_data = bool(position.get("end_of_data", False))
        self.logger.info(f"Worker {self.worker_id} restored at round {round_id}")

    def evaluate(self, raw_records: Iterable[str]) -> float:
        """Percent of parseable records the current model classifies correctly."""
        self._require_setup()
        correct, total = evaluate(self.model, self._parse_quietly(raw_records))
        return 100.0 * correct / total if total else 0.0

    def _parse_quietly(self, raw_records: Iterable[str]):
        for raw in raw_records:
            if not raw.strip():
                continue
            try:
                yield self.record_factory.parse(raw)
            except RecordParseError:
                continue

    @property
    def split(self) -> Optional[InputSplit]:
        return self._reader.split if self._reader is not None else None

    @property
    def vector(self) -> ParameterVector:
        self._require_setup()
        return self.model.vector

    def get_stats(self) -> Dict[str, Any]:
        stats = {
            "worker_id": self.worker_id,
            "round_id": self.round_id,
            "end_of_data": self.end_of_data,
            **self._stats,
        }
        if self.model is not None:
            stats.update(self.model.get_stats())
        return stats

    def close(self):
        if self._reader is not None and self._owns_reader:
            self._reader.close()

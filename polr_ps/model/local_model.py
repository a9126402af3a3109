"""Worker-local online logistic regression."""

from typing import Any, Dict, Optional, Tuple
import numpy as np

from polr_ps.exceptions import DimensionMismatchError
from polr_ps.model.parameter_vector import ParameterVector
from polr_ps.optimizers import BaseOptimizer, create_optimizer


class LocalModel:
    """
    Multinomial logistic regression trained one record at a time.

    The weights are a ParameterVector viewed as a
    ``(num_categories, feature_vector_size)`` matrix. For a record ``x``
    with label ``y``:

        p    = softmax(W @ x)
        grad = outer(p - onehot(y), x)

    and the configured optimizer takes one step on the columns where ``x``
    is non-zero.

    The model also tracks the vector as of its last sync point (the last
    applied broadcast or the last ``take_delta``), so the net local change
    can be shipped to the master.
    """

    PARAM_ID = "beta"

    def __init__(
        self,
        feature_vector_size: int,
        num_categories: int,
        optimizer: Optional[BaseOptimizer] = None,
        initial_vector: Optional[ParameterVector] = None,
        metrics_window: int = 1000
    ):
        """
        Args:
            feature_vector_size: Features per record
            num_categories: Number of target categories
            optimizer: Local optimizer (plain SGD with lr 0.01 if None)
            initial_vector: Starting weights (zeros if None)
            metrics_window: Window of the running log-likelihood/accuracy averages
        """
        self.feature_vector_size = feature_vector_size
        self.num_categories = num_categories
        self.optimizer = optimizer or create_optimizer("sgd", learning_rate=0.01)

        length = feature_vector_size * num_categories
        if initial_vector is None:
            self._vector = ParameterVector.zeros(length)
        else:
            if len(initial_vector) != length:
                raise DimensionMismatchError(length, len(initial_vector), "initial vector")
            self._vector = initial_vector.copy()
        self._sync_point = self._vector.copy()

        self._metrics_window = metrics_window
        self.records_seen = 0
        self.average_log_likelihood = 0.0
        self.percent_correct = 0.0

    @property
    def vector(self) -> ParameterVector:
        """Immutable snapshot of the working weights."""
        return self._vector.snapshot()

    def __len__(self) -> int:
        return len(self._vector)

    def _check_record(self, features: np.ndarray, label: Optional[int] = None):
        if features.shape != (self.feature_vector_size,):
            raise DimensionMismatchError(
                self.feature_vector_size, features.size, "feature vector"
            )
        if label is not None and not 0 <= label < self.num_categories:
            raise ValueError(
                f"label {label} outside [0, {self.num_categories})"
            )

    def classify(self, features: np.ndarray) -> np.ndarray:
        """Category probabilities for one feature vector."""
        features = np.asarray(features, dtype=np.float64)
        self._check_record(features)
        scores = self._vector.as_matrix(self.num_categories) @ features
        return _softmax(scores)

    def predict(self, features: np.ndarray) -> int:
        return int(np.argmax(self.classify(features)))

    def train(self, features: np.ndarray, label: int) -> float:
        """
        One online step on a single labeled record.

        Args:
            features: Dense feature vector of length feature_vector_size
            label: Category index

        Returns:
            Log-likelihood of the record under the weights before the step
        """
        features = np.asarray(features, dtype=np.float64)
        label = int(label)
        self._check_record(features, label)

        columns = np.flatnonzero(features)
        values = features[columns]
        weights = self._vector.writable_matrix(self.num_categories)

        probs = _softmax(weights[:, columns] @ values)
        log_likelihood = float(np.log(max(probs[label], 1e-300)))
        correct = int(np.argmax(probs)) == label

        residual = probs
        residual[label] -= 1.0
        grads = np.outer(residual, values)
        self.optimizer.step(self.PARAM_ID, weights, grads, columns)

        self._update_metrics(log_likelihood, correct)
        return log_likelihood

    def _update_metrics(self, log_likelihood: float, correct: bool):
        self.records_seen += 1
        n = min(self.records_seen, self._metrics_window)
        self.average_log_likelihood += (log_likelihood - self.average_log_likelihood) / n
        self.percent_correct += (100.0 * correct - self.percent_correct) / n

    def take_delta(self) -> ParameterVector:
        """
        Net change since the last sync point; moves the sync point here.

        A second call with no training in between returns the zero vector.
        """
        delta = self._vector.subtract(self._sync_point)
        self._sync_point.assign(self._vector)
        return delta

    def apply_global_vector(self, vector: ParameterVector):
        """
        Overwrite the working weights with an authoritative vector.

        Optimizer state stays local.

        Raises:
            DimensionMismatchError: if the lengths differ; nothing changes
        """
        self._vector.check_length(len(vector), "global vector")
        self._vector.assign(vector)
        self._sync_point.assign(vector)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "records_seen": self.records_seen,
            "average_log_likelihood": self.average_log_likelihood,
            "percent_correct": self.percent_correct,
            "optimizer_steps": self.optimizer.step_count,
        }


def _softmax(scores: np.ndarray) -> np.ndarray:
    shifted = np.exp(scores - np.max(scores))
    return shifted / shifted.sum()


def evaluate(model: LocalModel, records) -> Tuple[int, int]:
    """
    Count correct predictions over ``(features, label)`` pairs.

    Returns:
        (num_correct, num_records)
    """
    correct = 0
    total = 0
    for features, label in records:
        correct += model.predict(features) == label
        total += 1
    return correct, total

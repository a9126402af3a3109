"""Base optimizer interface for the local logistic regression step."""

from abc import ABC, abstractmethod
from typing import Dict, Optional
import numpy as np


class BaseOptimizer(ABC):
    """
    Base class for local-model optimizers.

    Optimizers update a ``(num_categories, feature_vector_size)`` weight
    matrix in place. A step may be restricted to a subset of feature
    columns, which keeps updates for sparse records proportional to the
    number of non-zero features rather than the full vector length.
    Per-parameter state (velocity, accumulators) lives in the optimizer and
    is never shipped to the master.
    """

    def __init__(self, learning_rate: float = 0.01, weight_decay: float = 0.0):
        """
        Initialize optimizer.

        Args:
            learning_rate: Learning rate for updates
            weight_decay: L2 regularization factor, applied to touched columns
        """
        self.learning_rate = learning_rate
        self.weight_decay = weight_decay
        self._state: Dict[str, np.ndarray] = {}
        self._step_count = 0

    @property
    def step_count(self) -> int:
        return self._step_count

    def step(
        self,
        param_id: str,
        params: np.ndarray,
        grads: np.ndarray,
        columns: Optional[np.ndarray] = None
    ):
        """
        Apply one gradient step to ``params`` in place.

        Args:
            param_id: Unique identifier for the parameter
            params: Weight matrix, modified in place
            grads: Gradient for ``params[:, columns]`` (or all of ``params``)
            columns: Feature columns the gradient covers; None for all
        """
        if columns is None:
            columns = slice(None)
        if self.weight_decay != 0:
            grads = grads + self.weight_decay * params[:, columns]
        self._apply(param_id, params, grads, columns)
        self._step_count += 1

    @abstractmethod
    def _apply(self, param_id: str, params: np.ndarray, grads: np.ndarray, columns):
        """Subclass update rule for ``params[:, columns]``."""

    def _get_or_create_state(
        self,
        param_id: str,
        state_name: str,
        shape: tuple,
        init_value: float = 0.0
    ) -> np.ndarray:
        """
        Get or create a state buffer for a parameter.

        Args:
            param_id: Parameter identifier
            state_name: Name of the state (e.g., "velocity", "accumulator")
            shape: Shape of the buffer
            init_value: Initial value
        """
        key = f"{param_id}_{state_name}"
        if key not in self._state:
            self._state[key] = np.full(shape, init_value, dtype=np.float64)
        return self._state[key]

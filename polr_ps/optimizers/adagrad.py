"""Adagrad optimizer for sparse feature vectors."""

import numpy as np

from polr_ps.optimizers.base import BaseOptimizer


class AdagradOptimizer(BaseOptimizer):
    """
    Adagrad (Adaptive Gradient Algorithm).

    Hashed text features are sparse and very unevenly frequent, so a
    per-weight learning rate lets rare terms take larger steps.

    Reference: "Adaptive Subgradient Methods for Online Learning and
               Stochastic Optimization" - Duchi et al., 2011
    """

    def __init__(
        self,
        learning_rate: float = 0.1,
        weight_decay: float = 0.0,
        epsilon: float = 1e-10,
        initial_accumulator: float = 0.1
    ):
        """
        Args:
            learning_rate: Base learning rate
            weight_decay: L2 regularization factor
            epsilon: Small constant for numerical stability
            initial_accumulator: Starting value of the squared-gradient sums
        """
        super().__init__(learning_rate, weight_decay)
        self.epsilon = epsilon
        self.initial_accumulator = initial_accumulator

    def _apply(self, param_id, params, grads, columns):
        """
        accumulator += grads^2
        params      -= lr * grads / (sqrt(accumulator) + eps)
        """
        accumulator = self._get_or_create_state(
            param_id, "accumulator", params.shape, self.initial_accumulator
        )
        accumulator[:, columns] += np.square(grads)
        std = np.sqrt(accumulator[:, columns]) + self.epsilon
        params[:, columns] -= self.learning_rate * grads / std

"""SGD optimizer with optional momentum."""

from polr_ps.optimizers.base import BaseOptimizer


class SGDOptimizer(BaseOptimizer):
    """
    Stochastic gradient descent.

    Update rule for the touched columns:
        velocity = momentum * velocity + grads
        params  -= lr * velocity          (params -= lr * grads if momentum == 0)
    """

    def __init__(
        self,
        learning_rate: float = 0.01,
        weight_decay: float = 0.0,
        momentum: float = 0.0
    ):
        super().__init__(learning_rate, weight_decay)
        if not 0.0 <= momentum < 1.0:
            raise ValueError("momentum must be in [0, 1)")
        self.momentum = momentum

    def _apply(self, param_id, params, grads, columns):
        if self.momentum == 0:
            params[:, columns] -= self.learning_rate * grads
            return

        velocity = self._get_or_create_state(param_id, "velocity", params.shape)
        velocity[:, columns] = self.momentum * velocity[:, columns] + grads
        params[:, columns] -= self.learning_rate * velocity[:, columns]

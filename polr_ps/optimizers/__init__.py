"""Optimizers for the worker-local logistic regression step."""

from polr_ps.optimizers.base import BaseOptimizer
from polr_ps.optimizers.sgd import SGDOptimizer
from polr_ps.optimizers.adagrad import AdagradOptimizer

__all__ = [
    "BaseOptimizer",
    "SGDOptimizer",
    "AdagradOptimizer",
    "create_optimizer",
]


def create_optimizer(name: str, **kwargs) -> BaseOptimizer:
    """
    Factory function to create optimizer by name.

    Args:
        name: Optimizer name ("sgd", "adagrad")
        **kwargs: Optimizer-specific parameters

    Returns:
        Optimizer instance
    """
    optimizers = {
        "sgd": SGDOptimizer,
        "adagrad": AdagradOptimizer,
    }

    if name.lower() not in optimizers:
        raise ValueError(f"Unknown optimizer: {name}. Available: {list(optimizers.keys())}")

    return optimizers[name.lower()](**kwargs)

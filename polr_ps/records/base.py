"""Record factory interface and the identifier registry."""

from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Tuple, Type
import numpy as np

from polr_ps.exceptions import ConfigurationError


class RecordFactory(ABC):
    """
    Converts one raw text record into a labeled feature vector.

    Implementations must be deterministic across processes: two workers
    parsing the same line must produce the same vector, so hashing uses
    stable digests rather than Python's salted ``hash``.
    """

    def __init__(self, feature_vector_size: int, num_categories: int):
        """
        Args:
            feature_vector_size: Length of the produced feature vectors
            num_categories: Number of valid labels
        """
        self.feature_vector_size = feature_vector_size
        self.num_categories = num_categories

    @abstractmethod
    def parse(self, raw_record: str) -> Tuple[np.ndarray, int]:
        """
        Parse a raw record.

        Returns:
            (features, label) with a float64 vector of length
            feature_vector_size and label in [0, num_categories)

        Raises:
            RecordParseError: if the record is malformed
        """


_REGISTRY: Dict[str, Type[RecordFactory]] = {}


def register_record_factory(name: str) -> Callable[[Type[RecordFactory]], Type[RecordFactory]]:
    """Class decorator registering a factory under ``name``."""

    def decorator(cls: Type[RecordFactory]) -> Type[RecordFactory]:
        key = name.lower()
        existing = _REGISTRY.get(key)
        if existing is not None and existing is not cls:
            raise ValueError(f"Record factory already registered: {name}")
        _REGISTRY[key] = cls
        return cls

    return decorator


def get_record_factory(name: str) -> Type[RecordFactory]:
    """
    Resolve a registered factory class by identifier.

    Raises:
        ConfigurationError: for unknown identifiers
    """
    try:
        return _REGISTRY[name.lower()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown record factory: {name}. Available: {available_record_factories()}"
        ) from None


def create_record_factory(name: str, feature_vector_size: int, num_categories: int) -> RecordFactory:
    """Instantiate the factory registered under ``name``."""
    return get_record_factory(name)(feature_vector_size, num_categories)


def available_record_factories() -> List[str]:
    return sorted(_REGISTRY)

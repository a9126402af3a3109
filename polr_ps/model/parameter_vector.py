"""Fixed-length parameter vector exchanged between master and workers."""

from typing import Any, Union
import numpy as np

from polr_ps.exceptions import DimensionMismatchError


class ParameterVector:
    """
    Ordered float64 weights of a fixed length.

    The layout is ``num_categories`` contiguous blocks of
    ``feature_vector_size`` weights, one block per category. The length
    never changes after construction; every in-place operation checks the
    other operand's length before touching any element, so a failed update
    leaves the vector as it was.
    """

    __slots__ = ("_data",)

    dtype = np.float64

    def __init__(self, values: Union[np.ndarray, Any]):
        """
        Create a vector holding a private copy of ``values``.

        Args:
            values: 1-D array-like of weights
        """
        data = np.array(values, dtype=self.dtype, copy=True)
        if data.ndim != 1:
            raise ValueError(f"ParameterVector must be 1-D, got shape {data.shape}")
        self._data = data

    @classmethod
    def zeros(cls, length: int) -> "ParameterVector":
        if length < 1:
            raise ValueError(f"length must be positive, got {length}")
        return cls._wrap(np.zeros(length, dtype=cls.dtype))

    @classmethod
    def normal(cls, length: int, scale: float, seed=None) -> "ParameterVector":
        """Vector drawn from N(0, scale^2)."""
        rng = np.random.RandomState(seed)
        return cls._wrap(rng.randn(length) * scale)

    @classmethod
    def _wrap(cls, data: np.ndarray) -> "ParameterVector":
        # Takes ownership of ``data`` without copying
        vector = cls.__new__(cls)
        vector._data = data
        return vector

    def __len__(self) -> int:
        return self._data.shape[0]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ParameterVector):
            return NotImplemented
        return np.array_equal(self._data, other._data)

    __hash__ = None

    def __repr__(self) -> str:
        return f"ParameterVector(length={len(self)}, norm={self.norm():.6g})"

    @property
    def values(self) -> np.ndarray:
        """Read-only view of the weights."""
        view = self._data.view()
        view.flags.writeable = False
        return view

    @property
    def is_frozen(self) -> bool:
        return not self._data.flags.writeable

    def to_numpy(self) -> np.ndarray:
        """Writable copy of the weights."""
        return self._data.copy()

    def as_matrix(self, num_categories: int) -> np.ndarray:
        """Read-only ``(num_categories, feature_vector_size)`` view."""
        if num_categories < 1 or len(self) % num_categories != 0:
            raise ValueError(
                f"Length {len(self)} is not divisible into {num_categories} category blocks"
            )
        return self.values.reshape(num_categories, -1)

    def writable_matrix(self, num_categories: int) -> np.ndarray:
        """
        Writable ``(num_categories, feature_vector_size)`` view.

        Only the model that owns this vector may use it; it shares memory
        with the vector.
        """
        if num_categories < 1 or len(self) % num_categories != 0:
            raise ValueError(
                f"Length {len(self)} is not divisible into {num_categories} category blocks"
            )
        return self._writable().reshape(num_categories, -1)

    def copy(self) -> "ParameterVector":
        """Independent, writable copy."""
        return ParameterVector._wrap(self._data.copy())

    def snapshot(self) -> "ParameterVector":
        """Independent, immutable copy safe to hand to several readers."""
        data = self._data.copy()
        data.flags.writeable = False
        return ParameterVector._wrap(data)

    def check_length(self, other_length: int, context: str = "vector"):
        if other_length != len(self):
            raise DimensionMismatchError(len(self), other_length, context)

    def _writable(self) -> np.ndarray:
        if not self._data.flags.writeable:
            raise ValueError("Cannot mutate a snapshot ParameterVector")
        return self._data

    def assign(self, other: "ParameterVector"):
        """Overwrite every weight with ``other``'s."""
        self.check_length(len(other))
        self._writable()[:] = other._data

    def add_scaled(self, other: "ParameterVector", scale: float = 1.0):
        """In-place ``self += scale * other``."""
        self.check_length(len(other))
        data = self._writable()
        if scale == 1.0:
            data += other._data
        else:
            data += scale * other._data

    def subtract(self, other: "ParameterVector") -> "ParameterVector":
        """New vector ``self - other``."""
        self.check_length(len(other))
        return ParameterVector._wrap(self._data - other._data)

    def is_zero(self) -> bool:
        return not np.any(self._data)

    def norm(self) -> float:
        return float(np.linalg.norm(self._data))

    @property
    def nbytes(self) -> int:
        return self._data.nbytes

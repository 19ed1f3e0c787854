"""
Face Descriptor Module

A descriptor is the fixed-length numeric vector an embedding model produces
for a face region. This module defines the immutable Descriptor type, the
Euclidean distance used to compare two descriptors, and the binary encoding
used to persist descriptors in the gallery database.

Binary format: N little-endian IEEE-754 float32 values, no header.

Usage:
    from facematch.descriptor import Descriptor, distance

    a = Descriptor([0.0] * 128)
    b = Descriptor.from_bytes(blob)
    d = distance(a, b)  # raises DimensionMismatch if lengths differ
"""

from typing import Iterable, List, Union

import numpy as np

from facematch.errors import DimensionMismatch

# Storage dtype: little-endian float32
BLOB_DTYPE = np.dtype("<f4")


class Descriptor:
    """
    Immutable, fixed-length float32 vector describing one face region.

    The underlying numpy array is flagged read-only, so a Descriptor can be
    shared between threads and gallery snapshots without copying.

    Args:
        values: Any 1-D sequence of numbers (list, tuple, ndarray).
                Multi-dimensional arrays are flattened.

    Raises:
        ValueError: If the vector is empty or contains NaN/inf.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Union[Iterable[float], np.ndarray]):
        arr = np.array(values, dtype=np.float32).ravel()
        if arr.size == 0:
            raise ValueError("Descriptor must contain at least one value")
        if not np.all(np.isfinite(arr)):
            raise ValueError("Descriptor values must be finite")
        arr.setflags(write=False)
        self._values = arr

    @property
    def dimension(self) -> int:
        """Number of components (N)."""
        return int(self._values.shape[0])

    def as_array(self) -> np.ndarray:
        """Return the read-only float32 view of the values."""
        return self._values

    def tolist(self) -> List[float]:
        return [float(v) for v in self._values]

    def to_bytes(self) -> bytes:
        """Encode as N little-endian float32 values."""
        return self._values.astype(BLOB_DTYPE, copy=False).tobytes()

    @classmethod
    def from_bytes(cls, blob: bytes) -> "Descriptor":
        """
        Decode a descriptor written by to_bytes().

        Raises:
            ValueError: If the blob is empty or not a whole number of floats.
        """
        if len(blob) % BLOB_DTYPE.itemsize != 0:
            raise ValueError(
                f"Descriptor blob length {len(blob)} is not a multiple of "
                f"{BLOB_DTYPE.itemsize}"
            )
        return cls(np.frombuffer(blob, dtype=BLOB_DTYPE))

    def __len__(self) -> int:
        return self.dimension

    def __eq__(self, other) -> bool:
        if not isinstance(other, Descriptor):
            return NotImplemented
        return bool(np.array_equal(self._values, other._values))

    def __hash__(self) -> int:
        return hash(self._values.tobytes())

    def __repr__(self) -> str:
        head = ", ".join(f"{v:.4f}" for v in self._values[:3])
        more = ", ..." if self.dimension > 3 else ""
        return f"Descriptor(dim={self.dimension}, [{head}{more}])"


def distance(a: Descriptor, b: Descriptor) -> float:
    """
    Euclidean (L2) distance between two descriptors.

    Computed in float64 so that distance(a, b) == distance(b, a) exactly and
    distance(a, a) == 0.0.

    Raises:
        DimensionMismatch: If a and b have different lengths.
    """
    if a.dimension != b.dimension:
        raise DimensionMismatch(a.dimension, b.dimension)

    diff = a.as_array().astype(np.float64) - b.as_array().astype(np.float64)
    return float(np.sqrt(np.dot(diff, diff)))

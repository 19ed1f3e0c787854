"""
Error types for the FaceMatch engine.

Three failure classes are distinguished so callers can react to each one
differently:

    - DimensionMismatch: two descriptors of different length were compared
      (or stored against a gallery of another dimension). This is a
      configuration or programming error and is never recovered.
    - ExtractionFailed: the embedding extractor could not produce a
      descriptor for a face region. Recoverable per region.
    - StorageError: the gallery database is unavailable or a read/write
      failed.

A "no match" outcome is deliberately not an exception.
"""


class FaceMatchError(Exception):
    """Base class for all FaceMatch errors."""


class DimensionMismatch(FaceMatchError, ValueError):
    """Raised when descriptors of unequal length are compared."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Descriptor dimension mismatch: expected {expected}, got {actual}"
        )


class ExtractionFailed(FaceMatchError):
    """Raised when no descriptor could be extracted from a face region."""


class StorageError(FaceMatchError):
    """Raised when the gallery store cannot be read or written."""

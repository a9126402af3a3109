"""Input splits and record readers."""

from polr_ps.io.input_split import (
    InputSplit,
    InputRecordsSplit,
    ByteSource,
    LocalFileSource,
    S3RangeSource,
    compute_splits,
    open_source,
)

__all__ = [
    "InputSplit",
    "InputRecordsSplit",
    "ByteSource",
    "LocalFileSource",
    "S3RangeSource",
    "compute_splits",
    "open_source",
]

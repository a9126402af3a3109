"""Byte-range input splits and a line-record reader over them."""

import os
import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from polr_ps.exceptions import ConfigurationError


_SPLIT_LOCATION = re.compile(r"^(?P<path>.+):(?P<start>\d+)\+(?P<length>\d+)$")


@dataclass(frozen=True)
class InputSplit:
    """A contiguous byte range ``[start, start + length)`` of one file."""

    path: str
    start: int
    length: int

    @property
    def end(self) -> int:
        return self.start + self.length

    def __str__(self) -> str:
        return f"{self.path}:{self.start}+{self.length}"

    @classmethod
    def parse(cls, location: str, source: Optional["ByteSource"] = None) -> "InputSplit":
        """
        Parse ``"path:start+length"`` or a bare path (the whole file).

        Args:
            location: Split location string
            source: Byte source used to size a bare path
        """
        match = _SPLIT_LOCATION.match(location)
        if match:
            return cls(match.group("path"), int(match.group("start")), int(match.group("length")))
        source = source or open_source(location)
        return cls(location, 0, source.size())


class ByteSource:
    """Random-access bytes of a single file."""

    def size(self) -> int:
        raise NotImplementedError

    def read(self, offset: int, length: int) -> bytes:
        """Up to ``length`` bytes at ``offset``; empty at end of file."""
        raise NotImplementedError

    def close(self):
        pass


class LocalFileSource(ByteSource):
    """Local filesystem file."""

    def __init__(self, path: str):
        if path.startswith("file://"):
            path = path[len("file://"):]
        if not os.path.isfile(path):
            raise ConfigurationError(f"Input file not found: {path}")
        self.path = path
        self._handle = None

    def size(self) -> int:
        return os.path.getsize(self.path)

    def read(self, offset: int, length: int) -> bytes:
        if self._handle is None:
            self._handle = open(self.path, "rb")
        self._handle.seek(offset)
        return self._handle.read(length)

    def close(self):
        if self._handle is not None:
            self._handle.close()
            self._handle = None


class S3RangeSource(ByteSource):
    """
    S3 object read with ranged GETs.

    Works with any S3-compatible endpoint (MinIO, etc.).
    """

    def __init__(self, s3_path: str, client=None, endpoint_url: Optional[str] = None):
        """
        Args:
            s3_path: s3://bucket/key
            client: boto3 S3 client (created lazily if None)
            endpoint_url: Custom endpoint for the lazily created client
        """
        self.bucket, self.key = self._parse_s3_path(s3_path)
        self.endpoint_url = endpoint_url
        self._s3 = client
        self._size: Optional[int] = None

    @staticmethod
    def _parse_s3_path(s3_path: str) -> Tuple[str, str]:
        for prefix in ("s3://", "s3a://"):
            if s3_path.startswith(prefix):
                s3_path = s3_path[len(prefix):]
                break
        bucket, _, key = s3_path.partition("/")
        if not bucket or not key:
            raise ConfigurationError(f"Invalid S3 path: {s3_path}")
        return bucket, key

    def _client(self):
        if self._s3 is None:
            import boto3

            client_kwargs = {}
            if self.endpoint_url:
                client_kwargs["endpoint_url"] = self.endpoint_url
            self._s3 = boto3.client("s3", **client_kwargs)
        return self._s3

    def size(self) -> int:
        if self._size is None:
            head = self._client().head_object(Bucket=self.bucket, Key=self.key)
            self._size = int(head["ContentLength"])
        return self._size

    def read(self, offset: int, length: int) -> bytes:
        if length <= 0 or offset >= self.size():
            return b""
        last = min(offset + length, self.size()) - 1
        response = self._client().get_object(
            Bucket=self.bucket,
            Key=self.key,
            Range=f"bytes={offset}-{last}",
        )
        return response["Body"].read()


def open_source(location: str, s3_client=None) -> ByteSource:
    """Pick a byte source for a path or URI."""
    if location.startswith(("s3://", "s3a://")):
        return S3RangeSource(location, client=s3_client)
    return LocalFileSource(location)


def compute_splits(path: str, num_splits: int, source: Optional[ByteSource] = None) -> List[InputSplit]:
    """
    Divide a file into ``num_splits`` contiguous byte ranges.

    Ranges are cut at byte offsets, not line boundaries; the record reader
    assigns each line to exactly one split. Empty trailing ranges are
    dropped, so small files can yield fewer splits than requested.
    """
    if num_splits < 1:
        raise ValueError("num_splits must be at least 1")
    source = source or open_source(path)
    total = source.size()
    split_size = max(1, -(-total // num_splits))

    splits = []
    for start in range(0, total, split_size):
        splits.append(InputSplit(path, start, min(split_size, total - start)))
    return splits


class InputRecordsSplit:
    """
    Forward-only line reader over one InputSplit.

    Line ownership follows the usual line-record-reader rules: a split that
    does not start at offset 0 skips through its first newline, and a split
    reads every line that starts at or before its end offset, including the
    line that runs past it. Every line of the file is therefore read by
    exactly one split.
    """

    CHUNK_SIZE = 64 * 1024

    def __init__(
        self,
        split: InputSplit,
        source: Optional[ByteSource] = None,
        encoding: str = "utf-8"
    ):
        self.split = split
        self.encoding = encoding
        self._source = source or open_source(split.path)
        self._owns_source = source is None
        self.records_read = 0
        self.reset()

    def reset(self):
        """Rewind to the first record of the split."""
        # _buffer[0] sits at file offset _buffer_start; _index is the read position in it
        self._buffer = b""
        self._buffer_start = self.split.start
        self._index = 0
        self._eof = False
        self._pending: Optional[str] = None
        self.records_read = 0
        if self.split.start != 0:
            self._read_line()

    @property
    def position(self) -> int:
        """File offset of the next unread byte."""
        return self._buffer_start + self._index

    def _fill(self) -> bool:
        if self._eof:
            return False
        chunk = self._source.read(self._buffer_start + len(self._buffer), self.CHUNK_SIZE)
        if not chunk:
            self._eof = True
            return False
        self._buffer_start += self._index
        self._buffer = self._buffer[self._index:] + chunk
        self._index = 0
        return True

    def _read_line(self) -> Optional[bytes]:
        """Next raw line, or None at end of file."""
        scan_from = self._index
        while True:
            newline = self._buffer.find(b"\n", scan_from)
            if newline >= 0:
                line = self._buffer[self._index:newline]
                self._index = newline + 1
                return line
            scan_from = len(self._buffer) - self._index
            if not self._fill():
                if self._index >= len(self._buffer):
                    return None
                line = self._buffer[self._index:]
                self._index = len(self._buffer)
                return line

    def has_next(self) -> bool:
        if self._pending is not None:
            return True
        if self.position > self.split.end:
            return False
        line = self._read_line()
        if line is None:
            return False
        self._pending = line.rstrip(b"\r").decode(self.encoding, errors="replace")
        return True

    def next(self) -> str:
        """Next record; raises StopIteration when the split is exhausted."""
        if not self.has_next():
            raise StopIteration
        record, self._pending = self._pending, None
        self.records_read += 1
        return record

    def skip(self, count: int) -> int:
        """Discard up to ``count`` records; returns how many were skipped."""
        skipped = 0
        while skipped < count and self.has_next():
            self.next()
            skipped += 1
        return skipped

    def __iter__(self) -> Iterator[str]:
        return self

    def __next__(self) -> str:
        return self.next()

    def close(self):
        if self._owns_source:
            self._source.close()

    def __enter__(self) -> "InputRecordsSplit":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

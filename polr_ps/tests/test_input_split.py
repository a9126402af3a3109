"""Tests for byte-range input splits."""

import io
import os
import shutil
import tempfile
import unittest

from polr_ps.exceptions import ConfigurationError
from polr_ps.io import InputRecordsSplit, InputSplit, S3RangeSource, compute_splits
from polr_ps.io.input_split import LocalFileSource, open_source


LINES = [f"line number {i} " + "x" * (i % 7) for i in range(200)]


class FakeS3Client:
    """Serves one object through head_object / ranged get_object."""

    def __init__(self, data: bytes):
        self.data = data
        self.ranges = []

    def head_object(self, Bucket, Key):
        return {"ContentLength": len(self.data)}

    def get_object(self, Bucket, Key, Range):
        first, last = Range[len("bytes="):].split("-")
        self.ranges.append((int(first), int(last)))
        return {"Body": io.BytesIO(self.data[int(first):int(last) + 1])}


class TestInputSplit(unittest.TestCase):
    """Tests for InputSplit and compute_splits."""

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.path = os.path.join(self.tmp, "data.txt")
        with open(self.path, "w") as f:
            f.write("\n".join(LINES) + "\n")
        self.size = os.path.getsize(self.path)

    def tearDown(self):
        shutil.rmtree(self.tmp)

    def test_parse_location(self):
        split = InputSplit.parse("/data/part-0:100+50")
        self.assertEqual(split, InputSplit("/data/part-0", 100, 50))
        self.assertEqual(split.end, 150)
        self.assertEqual(str(split), "/data/part-0:100+50")

    def test_parse_bare_path(self):
        split = InputSplit.parse(self.path)
        self.assertEqual(split.start, 0)
        self.assertEqual(split.length, self.size)

    def test_missing_file(self):
        with self.assertRaises(ConfigurationError):
            LocalFileSource(os.path.join(self.tmp, "missing.txt"))

    def test_compute_splits_cover_file(self):
        splits = compute_splits(self.path, 3)
        self.assertEqual(len(splits), 3)
        self.assertEqual(splits[0].start, 0)
        self.assertEqual(sum(s.length for s in splits), self.size)
        for a, b in zip(splits, splits[1:]):
            self.assertEqual(a.end, b.start)

    def test_compute_splits_small_file(self):
        path = os.path.join(self.tmp, "tiny.txt")
        with open(path, "w") as f:
            f.write("ab")
        self.assertEqual(len(compute_splits(path, 5)), 2)
        with self.assertRaises(ValueError):
            compute_splits(path, 0)


class TestInputRecordsSplit(unittest.TestCase):
    """Tests for the line-record reader."""

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.path = os.path.join(self.tmp, "data.txt")
        with open(self.path, "w") as f:
            f.write("\n".join(LINES) + "\n")

    def tearDown(self):
        shutil.rmtree(self.tmp)

    def read_all(self, split, source=None):
        with InputRecordsSplit(split, source=source) as reader:
            return list(reader)

    def test_whole_file(self):
        self.assertEqual(self.read_all(InputSplit.parse(self.path)), LINES)

    def test_every_line_read_exactly_once(self):
        """Any split count partitions the lines with no loss or overlap."""
        for num_splits in (2, 3, 7, 16):
            records = []
            for split in compute_splits(self.path, num_splits):
                records.extend(self.read_all(split))
            self.assertEqual(records, LINES, f"{num_splits} splits")

    def test_split_boundary_on_line_start(self):
        """A split ending exactly where a line starts still owns that line."""
        boundary = len(LINES[0]) + 1
        first = self.read_all(InputSplit(self.path, 0, boundary))
        second = self.read_all(InputSplit(self.path, boundary, 100))
        self.assertEqual(first, LINES[:2])
        self.assertEqual(second[0], LINES[2])

    def test_no_trailing_newline_and_crlf(self):
        path = os.path.join(self.tmp, "crlf.txt")
        with open(path, "wb") as f:
            f.write(b"a b\r\nc d\r\nlast")
        self.assertEqual(self.read_all(InputSplit.parse(path)), ["a b", "c d", "last"])

    def test_reset(self):
        reader = InputRecordsSplit(InputSplit.parse(self.path))
        first = [reader.next() for _ in range(3)]
        reader.reset()
        self.assertEqual(reader.records_read, 0)
        self.assertEqual([reader.next() for _ in range(3)], first)
        reader.close()

    def test_exhausted_raises_stop_iteration(self):
        path = os.path.join(self.tmp, "one.txt")
        with open(path, "w") as f:
            f.write("only\n")
        reader = InputRecordsSplit(InputSplit.parse(path))
        self.assertEqual(reader.next(), "only")
        self.assertFalse(reader.has_next())
        with self.assertRaises(StopIteration):
            reader.next()
        reader.close()

    def test_small_chunks(self):
        """Lines spanning several reads are reassembled."""
        reader = InputRecordsSplit(InputSplit.parse(self.path))
        reader.CHUNK_SIZE = 5
        reader.reset()
        self.assertEqual(list(reader), LINES)
        reader.close()

    def test_position_and_skip(self):
        reader = InputRecordsSplit(InputSplit.parse(self.path))
        self.assertEqual(reader.position, 0)
        reader.next()
        self.assertEqual(reader.position, len(LINES[0]) + 1)

        self.assertEqual(reader.skip(9), 9)
        self.assertEqual(reader.records_read, 10)
        self.assertEqual(reader.next(), LINES[10])
        self.assertEqual(reader.skip(1000), len(LINES) - 11)
        self.assertFalse(reader.has_next())
        reader.close()

    def test_lines_do_not_copy_buffer(self):
        """Lines within one chunk are sliced from the same buffer."""
        reader = InputRecordsSplit(InputSplit.parse(self.path))
        reader.next()
        buffer = reader._buffer
        for _ in range(5):
            reader.next()
            self.assertIs(reader._buffer, buffer)
        reader.close()

    def test_open_source_dispatch(self):
        self.assertIsInstance(open_source(self.path), LocalFileSource)
        self.assertIsInstance(open_source("file://" + self.path), LocalFileSource)
        self.assertIsInstance(open_source("s3://bucket/key", s3_client=object()), S3RangeSource)


class TestS3RangeSource(unittest.TestCase):
    """Tests for ranged S3 reads."""

    def setUp(self):
        self.data = ("\n".join(LINES) + "\n").encode("utf-8")
        self.client = FakeS3Client(self.data)

    def test_invalid_path(self):
        with self.assertRaises(ConfigurationError):
            S3RangeSource("s3://bucket-only", client=self.client)

    def test_size_and_read(self):
        source = S3RangeSource("s3://bucket/data.txt", client=self.client)
        self.assertEqual(source.size(), len(self.data))
        self.assertEqual(source.read(10, 5), self.data[10:15])
        self.assertEqual(self.client.ranges[-1], (10, 14))
        self.assertEqual(source.read(len(self.data), 5), b"")

    def test_splits_over_s3(self):
        source = S3RangeSource("s3a://bucket/data.txt", client=self.client)
        records = []
        for split in compute_splits("s3a://bucket/data.txt", 4, source=source):
            records.extend(list(InputRecordsSplit(split, source=source)))
        self.assertEqual(records, LINES)


if __name__ == "__main__":
    unittest.main()

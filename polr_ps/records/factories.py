"""Built-in record factories."""

import re
import zlib
from collections import Counter
from typing import Tuple
import numpy as np

from polr_ps.exceptions import ConfigurationError, RecordParseError
from polr_ps.records.base import RecordFactory, register_record_factory


NEWSGROUPS = (
    "alt.atheism",
    "comp.graphics",
    "comp.os.ms-windows.misc",
    "comp.sys.ibm.pc.hardware",
    "comp.sys.mac.hardware",
    "comp.windows.x",
    "misc.forsale",
    "rec.autos",
    "rec.motorcycles",
    "rec.sport.baseball",
    "rec.sport.hockey",
    "sci.crypt",
    "sci.electronics",
    "sci.med",
    "sci.space",
    "soc.religion.christian",
    "talk.politics.guns",
    "talk.politics.mideast",
    "talk.politics.misc",
    "talk.religion.misc",
)

_NEWSGROUP_INDEX = {name: i for i, name in enumerate(NEWSGROUPS)}
_WORD = re.compile(r"[a-z0-9][a-z0-9'_-]+")


def _check_label(label: int, num_categories: int, raw_record: str) -> int:
    if not 0 <= label < num_categories:
        raise RecordParseError(
            f"label {label} outside [0, {num_categories}) in record {raw_record[:60]!r}"
        )
    return label


@register_record_factory("twenty_newsgroups")
class TwentyNewsgroupsRecordFactory(RecordFactory):
    """
    ``"<newsgroup> <message text...>"`` lines.

    The label is the newsgroup's index in NEWSGROUPS. The text is a hashed
    bag of words: each word hashes (crc32) into features 1..n-1 with weight
    log(1 + count); feature 0 is a constant intercept.
    """

    def __init__(self, feature_vector_size: int, num_categories: int):
        super().__init__(feature_vector_size, num_categories)
        if feature_vector_size < 2:
            raise ConfigurationError("twenty_newsgroups needs feature_vector_size >= 2")

    def parse(self, raw_record: str) -> Tuple[np.ndarray, int]:
        newsgroup, _, text = raw_record.strip().partition(" ")
        if newsgroup not in _NEWSGROUP_INDEX:
            raise RecordParseError(f"Unknown newsgroup {newsgroup!r}")
        label = _check_label(_NEWSGROUP_INDEX[newsgroup], self.num_categories, raw_record)

        features = np.zeros(self.feature_vector_size, dtype=np.float64)
        features[0] = 1.0
        buckets = self.feature_vector_size - 1
        for word, count in Counter(_WORD.findall(text.lower())).items():
            index = 1 + zlib.crc32(word.encode("utf-8")) % buckets
            features[index] += np.log1p(count)
        return features, label


@register_record_factory("csv")
class CSVRecordFactory(RecordFactory):
    """``label,f0,f1,...`` dense numeric rows; the label is an integer."""

    def parse(self, raw_record: str) -> Tuple[np.ndarray, int]:
        fields = raw_record.strip().split(",")
        if len(fields) != self.feature_vector_size + 1:
            raise RecordParseError(
                f"Expected {self.feature_vector_size + 1} fields, got {len(fields)}"
            )
        try:
            label = int(fields[0])
            features = np.array(fields[1:], dtype=np.float64)
        except ValueError as e:
            raise RecordParseError(f"Non-numeric field in {raw_record[:60]!r}: {e}") from e
        return features, _check_label(label, self.num_categories, raw_record)


@register_record_factory("libsvm")
class LibSVMRecordFactory(RecordFactory):
    """``label idx:value ...`` sparse rows with 0-based feature indices."""

    def parse(self, raw_record: str) -> Tuple[np.ndarray, int]:
        tokens = raw_record.split()
        if not tokens:
            raise RecordParseError("Empty record")
        try:
            label = int(tokens[0])
            pairs = [token.split(":", 1) for token in tokens[1:]]
            indices = [int(index) for index, _ in pairs]
            values = [float(value) for _, value in pairs]
        except ValueError as e:
            raise RecordParseError(f"Malformed record {raw_record[:60]!r}: {e}") from e

        features = np.zeros(self.feature_vector_size, dtype=np.float64)
        for index, value in zip(indices, values):
            if not 0 <= index < self.feature_vector_size:
                raise RecordParseError(
                    f"Feature index {index} outside [0, {self.feature_vector_size})"
                )
            features[index] = value
        return features, _check_label(label, self.num_categories, raw_record)

"""Synthetic newsgroup-style shards for demos and tests."""

from typing import List, Optional
import numpy as np

from polr_ps.records.factories import NEWSGROUPS


COMMON_WORDS = ("the", "and", "for", "that", "with", "this", "from", "have", "not", "are")


def generate_newsgroup_lines(
    num_records: int,
    num_categories: int = len(NEWSGROUPS),
    words_per_record: int = 30,
    topic_words: int = 25,
    seed: Optional[int] = None
) -> List[str]:
    """
    Lines of ``"<newsgroup> <words...>"``.

    Each newsgroup has its own vocabulary of topic words; about half of a
    record's words come from it and the rest are common filler.
    """
    rng = np.random.RandomState(seed)
    groups = NEWSGROUPS[:num_categories]
    # Stems like "scispa" for sci.space are unique across the 20 groups
    stems = ["".join(part[:3] for part in group.split(".")) for group in groups]
    vocabularies = [[f"{stem}{k}" for k in range(topic_words)] for stem in stems]

    lines = []
    for _ in range(num_records):
        label = rng.randint(len(groups))
        words = []
        for _ in range(words_per_record):
            if rng.rand() < 0.5:
                words.append(vocabularies[label][rng.randint(topic_words)])
            else:
                words.append(COMMON_WORDS[rng.randint(len(COMMON_WORDS))])
        lines.append(f"{groups[label]} {' '.join(words)}")
    return lines


def write_newsgroups_shard(path: str, num_records: int, seed: Optional[int] = None, **kwargs) -> str:
    """Write a synthetic shard to ``path`` and return the path."""
    with open(path, "w", encoding="utf-8") as f:
        for line in generate_newsgroup_lines(num_records, seed=seed, **kwargs):
            f.write(line + "\n")
    return path

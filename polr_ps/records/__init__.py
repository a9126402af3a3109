"""Pluggable record factories, resolved by configured identifier."""

from polr_ps.records.base import (
    RecordFactory,
    register_record_factory,
    get_record_factory,
    create_record_factory,
    available_record_factories,
)
from polr_ps.records.factories import (
    NEWSGROUPS,
    TwentyNewsgroupsRecordFactory,
    CSVRecordFactory,
    LibSVMRecordFactory,
)

__all__ = [
    "RecordFactory",
    "register_record_factory",
    "get_record_factory",
    "create_record_factory",
    "available_record_factories",
    "NEWSGROUPS",
    "TwentyNewsgroupsRecordFactory",
    "CSVRecordFactory",
    "LibSVMRecordFactory",
]

"""Checkpoint storage for the global parameter vector."""

from polr_ps.storage.checkpoint import LocalCheckpointManager

__all__ = ["LocalCheckpointManager"]

"""Checkpoints of the global parameter vector."""

import io
import os
import shutil
import time
from typing import Any, Dict, List, Optional

import msgpack
import numpy as np

from polr_ps.model.parameter_vector import ParameterVector
from polr_ps.utils.logging import get_logger


class LocalCheckpointManager:
    """
    Saves and restores the master's vector on the local filesystem.

    Checkpoint structure:
        base_path/
        └── round_000029/
            ├── metadata.msgpack   # config, round id, timestamp, extras
            └── vector.npz         # global parameter vector
    """

    METADATA_FILE = "metadata.msgpack"
    VECTOR_FILE = "vector.npz"

    def __init__(self, base_path: str):
        """
        Args:
            base_path: Directory holding one subdirectory per checkpoint
        """
        self.base_path = base_path
        os.makedirs(base_path, exist_ok=True)
        self.logger = get_logger("checkpoint")

    def _round_path(self, round_id: int) -> str:
        return os.path.join(self.base_path, f"round_{round_id:06d}")

    def save(
        self,
        vector: ParameterVector,
        round_id: int,
        config: Dict[str, Any],
        metadata: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Save the vector as of the end of ``round_id``.

        Returns:
            Checkpoint directory
        """
        path = self._round_path(round_id)
        os.makedirs(path, exist_ok=True)

        buffer = io.BytesIO()
        np.savez_compressed(buffer, vector=vector.values)
        with open(os.path.join(path, self.VECTOR_FILE), "wb") as f:
            f.write(buffer.getvalue())

        meta = {
            "config": config,
            "round_id": round_id,
            "vector_length": len(vector),
            "timestamp": time.time(),
            "version": 1,
            **(metadata or {}),
        }
        with open(os.path.join(path, self.METADATA_FILE), "wb") as f:
            f.write(msgpack.packb(meta, use_bin_type=True))

        self.logger.info(f"Saved round {round_id} checkpoint to {path}")
        return path

    def load(self, path: Optional[str] = None) -> Dict[str, Any]:
        """
        Load a checkpoint; the newest one when ``path`` is None.

        Returns:
            Dict with "vector", "round_id", "config" and "metadata"

        Raises:
            FileNotFoundError: if there is no checkpoint to load
        """
        if path is None:
            checkpoints = self.list_checkpoints()
            if not checkpoints:
                raise FileNotFoundError(f"No checkpoints under {self.base_path}")
            path = checkpoints[0]["path"]

        with open(os.path.join(path, self.METADATA_FILE), "rb") as f:
            metadata = msgpack.unpackb(f.read(), raw=False)
        with np.load(os.path.join(path, self.VECTOR_FILE)) as data:
            vector = ParameterVector(data["vector"])

        self.logger.info(f"Loaded round {metadata['round_id']} checkpoint from {path}")
        return {
            "vector": vector,
            "round_id": metadata["round_id"],
            "config": metadata.get("config", {}),
            "metadata": metadata,
        }

    def list_checkpoints(self) -> List[Dict[str, Any]]:
        """Checkpoints sorted by round, newest first."""
        checkpoints = []
        for name in os.listdir(self.base_path):
            meta_path = os.path.join(self.base_path, name, self.METADATA_FILE)
            if not os.path.isfile(meta_path):
                continue
            with open(meta_path, "rb") as f:
                meta = msgpack.unpackb(f.read(), raw=False)
            checkpoints.append({
                "path": os.path.join(self.base_path, name),
                "round_id": meta["round_id"],
                "timestamp": meta.get("timestamp", 0),
            })
        checkpoints.sort(key=lambda c: c["round_id"], reverse=True)
        return checkpoints

    def delete(self, path: str):
        if os.path.isdir(path):
            shutil.rmtree(path)
            self.logger.info(f"Deleted checkpoint {path}")

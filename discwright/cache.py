"""
Cache Module

Skip-if-exists policy for stage artifacts. A fingerprint of the parameters
that produced an artifact is stored beside it, so a changed parameter
rebuilds the artifact even without a forced rebuild.
"""

import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

FINGERPRINT_SUFFIX = ".fingerprint"
PENDING = "pending"


def _file_stamp(path: Path) -> Any:
    try:
        stat = path.stat()
    except OSError:
        return None
    return [stat.st_size, stat.st_mtime_ns]


def fingerprint(params: Any, inputs: tuple = ()) -> str:
    """
    Hash the effective parameters of a build step.

    Args:
        params: JSON-serializable parameters (command lines, documents)
        inputs: Input files whose size and mtime are part of the key

    Returns:
        Hex SHA-256 digest
    """
    payload = {
        "params": params,
        "inputs": {str(p): _file_stamp(Path(p)) for p in inputs},
    }
    data = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


class ArtifactCache:
    """
    Decides whether a stage artifact can be reused.

    An artifact is reused when it exists, no rebuild was forced and its
    stored fingerprint matches. Artifacts from runs that predate
    fingerprints (no stamp file) are reused on presence alone; a build
    that did not finish leaves a pending stamp and is always redone.
    """

    def __init__(self, force_rebuild: bool = False):
        self.force_rebuild = force_rebuild

    @staticmethod
    def stamp_path(artifact: Path, stamp: Optional[Path] = None) -> Path:
        if stamp is not None:
            return stamp
        return artifact.with_name(artifact.name + FINGERPRINT_SUFFIX)

    def is_fresh(self, artifact: Path, key: str, stamp: Optional[Path] = None) -> bool:
        """Check whether an artifact exists and was built with the same key."""
        if self.force_rebuild or not artifact.exists():
            return False

        stamp = self.stamp_path(artifact, stamp)
        if not stamp.exists():
            logger.warning(f"Reusing {artifact.name} without a recorded fingerprint")
            return True

        stored = stamp.read_text().strip()
        if stored == PENDING:
            logger.info(f"Previous build of {artifact.name} did not finish, rebuilding")
            return False
        if stored != key:
            logger.info(f"Parameters changed for {artifact.name}, rebuilding")
            return False
        return True

    def begin(self, artifact: Path, stamp: Optional[Path] = None) -> None:
        """Mark an artifact as being built."""
        path = self.stamp_path(artifact, stamp)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(PENDING + "\n")

    def record(self, artifact: Path, key: str, stamp: Optional[Path] = None) -> None:
        """Store the fingerprint of a freshly built artifact."""
        self.stamp_path(artifact, stamp).write_text(key + "\n")

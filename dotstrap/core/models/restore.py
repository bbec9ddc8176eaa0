"""
RestorePoint — metadata of one captured configuration snapshot.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

METADATA_FILE = "metadata.json"
RESTORE_SCRIPT = "restore.sh"
FILES_DIR = "files"


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class RestorePoint(BaseModel):
    """Metadata stored as ``metadata.json`` inside a point directory.

    ``captured_files`` maps each captured absolute path to its location
    relative to the point's ``files/`` directory.
    """

    id: str
    name: str = ""
    created_at: str = Field(default_factory=_now_iso)
    profile_name: str = ""
    hostname: str = ""
    home: str = ""

    captured_files: dict[str, str] = Field(default_factory=dict)
    captured_symlink_targets: dict[str, str] = Field(default_factory=dict)
    absent_paths: list[str] = Field(default_factory=list)

    restore_procedure: str = RESTORE_SCRIPT

    @property
    def tracked(self) -> list[str]:
        return list(dict.fromkeys(
            [*self.captured_files, *self.captured_symlink_targets, *self.absent_paths],
        ))

    def covers(self, path: str) -> bool:
        return (
            path in self.captured_files
            or path in self.captured_symlink_targets
            or path in self.absent_paths
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at,
            "profile": self.profile_name,
            "hostname": self.hostname,
            "files": len(self.captured_files),
            "symlinks": len(self.captured_symlink_targets),
            "absent": len(self.absent_paths),
        }

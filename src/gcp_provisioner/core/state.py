"""State model for tracking managed resources."""

import contextlib
import hashlib
import json
import logging
import os
import tempfile
import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

STATE_FORMAT_VERSION = 1


def _canonical_json(obj: Any) -> str:
    # Stable encoding for hashes/digests. `default=str` keeps it robust for
    # datetimes/paths/etc while staying deterministic enough for our use.
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)


def compute_attributes_hash(attrs: Mapping[str, Any]) -> str:
    """Compute a stable hash for a resource's stored attributes."""
    payload = _canonical_json(attrs)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _now() -> datetime:
    return datetime.now(UTC)


class LiveRecord(BaseModel):
    """The last-known live attributes of a managed resource.

    Attributes:
        address: Unique resource address (e.g., "subnetwork.primary")
        resource_type: Type of the resource (e.g., "subnetwork")
        name: Instance name within the declaration (e.g., "primary")
        id: Opaque provider-assigned identifier
        attributes: Live attributes read back after the last apply (sensitive
            values sealed)
        attributes_hash: SHA256 hash for change detection
        dependencies: Addresses this resource depended on when applied
        version: Incremented on every write of this record
        deletion_protected: Destroy steps for this resource are refused
        created_at: When the resource was created
        updated_at: When the record was last written
    """

    address: str
    resource_type: str
    name: str
    id: str
    attributes: dict[str, Any] = Field(default_factory=dict)
    attributes_hash: str = ""
    dependencies: list[str] = Field(default_factory=list)
    version: int = 1
    deletion_protected: bool = False
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class State(BaseModel):
    """Versioned collection of ``LiveRecord``s keyed by address.

    Attributes:
        version: State file format version
        lineage: Identity of this state across serials
        serial: Incremented on every persisted change
        records: Mapping of resource addresses to records
        deposed: Previous objects of create-first replacements whose delete
            has not completed yet
        outputs: Output values from the configuration
    """

    version: int = STATE_FORMAT_VERSION
    serial: int = 0
    lineage: str = Field(default_factory=lambda: str(uuid.uuid4()))
    records: dict[str, LiveRecord] = Field(default_factory=dict)
    deposed: dict[str, LiveRecord] = Field(default_factory=dict)
    outputs: dict[str, Any] = Field(default_factory=dict)

    def save(self, path: Path) -> None:
        """Save state to a JSON file.

        - Writes atomically (temp file + rename)
        - Writes a `.backup` copy of the previous state when overwriting
        """
        path.parent.mkdir(parents=True, exist_ok=True)

        backup_path = Path(str(path) + ".backup")
        # Avoid TOCTOU race between exists() and read_bytes().
        with contextlib.suppress(FileNotFoundError):
            backup_path.write_bytes(path.read_bytes())

        data = self.model_dump(mode="json")
        content = json.dumps(data, indent=2, sort_keys=True) + "\n"

        fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        tmp_file = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            tmp_file.replace(path)
        finally:
            with contextlib.suppress(FileNotFoundError):
                tmp_file.unlink()
        logger.debug("State saved: serial=%d path=%s", self.serial, path)

    @classmethod
    def load(cls, path: Path) -> "State":
        """Load state from a JSON file."""
        state = cls.model_validate_json(path.read_text(encoding="utf-8"))
        logger.debug("State loaded from %s", path)
        return state

    @classmethod
    def load_or_create(cls, path: Path) -> "State":
        """Load existing state or create a new one."""
        if path.exists():
            return cls.load(path)
        logger.debug("Created new state for %s", path)
        return cls()


def compute_state_digest(state: State) -> str:
    """Compute a stable digest of state content (excluding timestamps).

    Used for stale-plan detection. Timestamps are excluded since they should
    not force a re-plan.
    """
    records = []
    for address, rec in sorted(state.records.items(), key=lambda kv: kv[0]):
        records.append(
            {
                "address": address,
                "resource_type": rec.resource_type,
                "name": rec.name,
                "id": rec.id,
                "version": rec.version,
                "attributes_hash": rec.attributes_hash,
                "dependencies": sorted(rec.dependencies),
                "deletion_protected": rec.deletion_protected,
            }
        )

    digestable = {
        "version": state.version,
        "lineage": state.lineage,
        "serial": state.serial,
        "records": records,
        "deposed": sorted(state.deposed),
    }
    payload = _canonical_json(digestable)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()

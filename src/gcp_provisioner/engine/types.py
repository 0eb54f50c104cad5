"""Engine types (plan steps, apply results, drift reports)."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from gcp_provisioner.resources.base import ReplaceStrategy


class Action(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DESTROY = "destroy"
    NOOP = "noop"


class PlanMetadata(BaseModel):
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    destroy: bool
    refresh: bool
    state_lineage: str
    state_serial: int
    state_digest: str
    config_digest: str
    engine_version: str


class PlanStep(BaseModel):
    """One planned action.

    ``desired`` holds the declared attributes with reference expressions
    intact and sensitive values sealed; references are resolved against
    committed state when the step runs. ``declared`` is the same map with
    sensitive values in clear. It is never serialized, so a plan loaded from
    a file gets it back from its configuration (see
    ``ProvisionEngine.apply``).
    ``planned`` and ``diff`` are display values: sensitive values redacted,
    unknowns rendered as "(known after apply)".
    """

    address: str
    resource_type: str
    name: str
    action: Action
    reason: str = ""
    index: int = 0
    desired: dict[str, Any] | None = None
    declared: dict[str, Any] | None = Field(default=None, exclude=True, repr=False)
    prior: dict[str, Any] | None = None
    planned: dict[str, Any] | None = None
    diff: dict[str, Any] | None = None
    depends_on: list[str] = Field(default_factory=list)
    replace_strategy: ReplaceStrategy = "destroy-first"
    deletion_protected: bool = False
    blocked: bool = False
    deposed: bool = False
    prior_id: str | None = None
    prior_version: int | None = None
    state_only: bool = False

    @property
    def key(self) -> str:
        return f"{self.address}#deposed" if self.deposed else self.address

    @property
    def changed_attributes(self) -> list[str]:
        return sorted(self.diff or {})


# Plan report and summary entry for a step refused by deletion protection.
BLOCKED = "blocked"


class Plan(BaseModel):
    metadata: PlanMetadata
    steps: list[PlanStep]

    @property
    def has_changes(self) -> bool:
        return any(s.action != Action.NOOP for s in self.steps)

    def summary(self) -> dict[str, int]:
        """Step counts per action.

        Steps blocked by deletion protection will not run; they are counted
        under ``blocked`` only.
        """
        counts = {a.value: 0 for a in Action}
        counts[BLOCKED] = 0
        for s in self.steps:
            counts[BLOCKED if s.blocked else s.action.value] += 1
        return counts

    def report(self) -> list[dict[str, Any]]:
        """Machine-readable ordered plan report."""
        return [
            {
                "address": s.key,
                "type": s.resource_type,
                "name": s.name,
                "action": BLOCKED if s.blocked else s.action.value,
                "reason": s.reason,
                "blocked": s.blocked,
                "changed_attributes": s.changed_attributes,
            }
            for s in self.steps
        ]

    def save(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = self.model_dump(mode="json")
        path.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> Plan:
        path = Path(path)
        return cls.model_validate_json(path.read_text(encoding="utf-8"))


# ── Apply ───────────────────────────────────────────────────────────


class StepStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    BLOCKED = "blocked"
    NOT_STARTED = "not-started"


class ApplyStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial-failure"
    FAILURE = "failure"


class StepResult(BaseModel):
    """Outcome of one plan step.

    ``dispatch_seq`` and ``commit_seq`` come from one session-wide counter,
    so for every dependency edge ``u -> v`` the trace shows
    ``u.commit_seq < v.dispatch_seq``.
    """

    address: str
    resource_type: str
    action: Action
    status: StepStatus = StepStatus.NOT_STARTED
    error: str | None = None
    attempts: int = 0
    record_version: int | None = None
    dispatch_seq: int | None = None
    commit_seq: int | None = None
    dispatched_at: datetime | None = None
    finished_at: datetime | None = None


class ApplyResult(BaseModel):
    steps: list[StepResult] = Field(default_factory=list)
    canceled: bool = False

    def step(self, address: str) -> StepResult:
        return next(s for s in self.steps if s.address == address)

    @property
    def status(self) -> ApplyStatus:
        if all(s.status == StepStatus.SUCCESS for s in self.steps):
            return ApplyStatus.SUCCESS
        if any(s.status == StepStatus.SUCCESS for s in self.steps):
            return ApplyStatus.PARTIAL_FAILURE
        return ApplyStatus.FAILURE

    @property
    def exit_code(self) -> int:
        return 0 if self.status == ApplyStatus.SUCCESS else 1

    def summary(self) -> dict[str, int]:
        counts = {s.value: 0 for s in StepStatus}
        for s in self.steps:
            counts[s.status.value] += 1
        return counts


# ── Drift ───────────────────────────────────────────────────────────


class DriftStatus(str, Enum):
    IN_SYNC = "in-sync"
    DRIFTED = "drifted"
    MISSING = "missing"
    UNREADABLE = "unreadable"


class ResourceDrift(BaseModel):
    address: str
    resource_type: str
    status: DriftStatus
    # attribute -> {"stored": ..., "live": ...}; sensitive values redacted
    drifted: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None


class DriftReport(BaseModel):
    resources: dict[str, ResourceDrift] = Field(default_factory=dict)

    @property
    def drifted(self) -> dict[str, ResourceDrift]:
        return {a: r for a, r in self.resources.items() if r.status != DriftStatus.IN_SYNC}

    @property
    def has_drift(self) -> bool:
        return bool(self.drifted)

"""Drift detection: compare live attributes with stored records.

Read-only. Providers are only asked to ``read``; neither state nor
infrastructure is modified.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

from gcp_provisioner.engine.errors import ProviderError, ResourceNotFoundError
from gcp_provisioner.engine.planner import changed_attributes
from gcp_provisioner.engine.schema import REDACTED
from gcp_provisioner.engine.types import DriftReport, DriftStatus, ResourceDrift

if TYPE_CHECKING:
    from gcp_provisioner.core.state import LiveRecord, State
    from gcp_provisioner.engine.provider import EngineContext
    from gcp_provisioner.engine.registry import ResourceTypeRegistry
    from gcp_provisioner.engine.retry import RetryPolicy

logger = logging.getLogger(__name__)


class DriftDetector:
    def __init__(
        self,
        *,
        registry: ResourceTypeRegistry,
        ctx: EngineContext,
        parallelism: int = 4,
        retry: RetryPolicy | None = None,
    ) -> None:
        self._registry = registry
        self._ctx = ctx
        self._parallelism = max(1, parallelism)
        self._retry = retry

    def read_live(self, record: LiveRecord) -> dict[str, Any] | None:
        """Live attributes of *record*, sealed like stored ones; ``None`` if gone."""
        reg = self._registry.get(record.resource_type)
        try:
            if self._retry is not None:
                attrs = self._retry.call(reg.provider.read, self._ctx, record)
            else:
                attrs = reg.provider.read(self._ctx, record)
        except ResourceNotFoundError:
            return None
        return reg.schema.seal({**attrs, "id": record.id})

    def compare(self, record: LiveRecord, live: dict[str, Any] | None) -> ResourceDrift:
        if live is None:
            return ResourceDrift(
                address=record.address,
                resource_type=record.resource_type,
                status=DriftStatus.MISSING,
            )
        schema = self._registry.describe(record.resource_type)
        # Live values take the "desired" side so provider-added map keys count.
        stored = record.attributes
        names = sorted(
            set(changed_attributes(schema, live, stored))
            | set(changed_attributes(schema, stored, live))
        )
        drifted: dict[str, Any] = {}
        for name in names:
            attr = schema.attribute(name)
            if attr is not None and attr.sensitive:
                drifted[name] = {"stored": REDACTED, "live": REDACTED}
            else:
                drifted[name] = {
                    "stored": schema.redact({name: stored.get(name)}).get(name),
                    "live": schema.redact({name: live.get(name)}).get(name),
                }
        return ResourceDrift(
            address=record.address,
            resource_type=record.resource_type,
            status=DriftStatus.DRIFTED if drifted else DriftStatus.IN_SYNC,
            drifted=drifted,
        )

    def _detect_one(self, record: LiveRecord) -> ResourceDrift:
        try:
            live = self.read_live(record)
        except ProviderError as exc:
            logger.warning("Could not read %s: %s", record.address, exc)
            return ResourceDrift(
                address=record.address,
                resource_type=record.resource_type,
                status=DriftStatus.UNREADABLE,
                error=str(exc),
            )
        drift = self.compare(record, live)
        logger.debug("Drift check %s: %s", record.address, drift.status.value)
        return drift

    def detect(self, state: State) -> DriftReport:
        """Read every managed resource and report divergence from *state*."""
        records = [state.records[a] for a in sorted(state.records)]
        logger.info("Checking %d resources for drift", len(records))
        with ThreadPoolExecutor(max_workers=self._parallelism, thread_name_prefix="drift") as pool:
            results = list(pool.map(self._detect_one, records))
        return DriftReport(resources={r.address: r for r in results})

"""In-process simulated cloud.

``SimulatedCloud`` keeps objects per resource type, assigns opaque ids and
synthesizes the output-only attributes a real API would return (self links,
addresses, endpoints). Objects whose identifying attributes collide with an
existing object are rejected with ``ConflictError``, like the real APIs.

It is the provider wired by the CLI when no real client is configured, and
the test double for the engine. Faults can be injected per type and
operation, and an artificial latency makes concurrency observable.
"""

from __future__ import annotations

import contextlib
import copy
import hashlib
import ipaddress
import json
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from gcp_provisioner.engine.errors import ConflictError, ProviderError, ResourceNotFoundError
from gcp_provisioner.engine.provider import ResourceProvider
from gcp_provisioner.resources.base import Resource
from gcp_provisioner.resources.markers import computed_fields

if TYPE_CHECKING:
    from collections.abc import Callable

    from gcp_provisioner.core.state import LiveRecord
    from gcp_provisioner.engine.provider import EngineContext

logger = logging.getLogger(__name__)

CloudOp = Literal["create", "read", "update", "delete"]

COMPUTE_API = "https://www.googleapis.com/compute/v1/projects"
CONTAINER_API = "https://container.googleapis.com/v1/projects"
SQL_API = "https://sqladmin.googleapis.com/v1/projects"

# Attributes that identify an object within its type (name uniqueness).
_IDENTITY: dict[str, tuple[str, ...]] = {
    "subnetwork": ("region", "name"),
    "router": ("region", "name"),
    "router_nat": ("router", "name"),
    "service_networking_connection": ("network", "service"),
    "cluster": ("location", "name"),
    "node_pool": ("cluster", "name"),
    "service_account": ("account_id",),
    "project_iam_member": ("project", "role", "member"),
    "database": ("instance", "name"),
    "database_user": ("instance", "name"),
    "cache_instance": ("region", "name"),
}


def _first_host(cidr: str) -> str | None:
    try:
        return str(next(ipaddress.ip_network(cidr, strict=False).hosts()))
    except (ValueError, StopIteration):
        return None


def _private_ip(n: int, host: int) -> str:
    return f"10.{100 + n % 150}.0.{host}"


def _computed(
    resource_type: str, ctx: EngineContext, attrs: dict[str, Any], n: int
) -> dict[str, Any]:
    """Output-only attributes for a freshly written object."""
    project = ctx.project
    name = attrs.get("name")
    region = attrs.get("region") or ctx.region
    match resource_type:
        case "network":
            return {"self_link": f"{COMPUTE_API}/{project}/global/networks/{name}"}
        case "subnetwork":
            return {
                "self_link": f"{COMPUTE_API}/{project}/regions/{region}/subnetworks/{name}",
                "gateway_address": _first_host(attrs.get("ip_cidr_range", "")),
            }
        case "router":
            return {"self_link": f"{COMPUTE_API}/{project}/regions/{region}/routers/{name}"}
        case "global_address":
            return {
                "address": f"10.{100 + n % 150}.0.0",
                "self_link": f"{COMPUTE_API}/{project}/global/addresses/{name}",
            }
        case "service_networking_connection":
            return {"peering": "servicenetworking-googleapis-com"}
        case "cluster":
            location = attrs.get("location")
            return {
                "endpoint": _private_ip(n, 2),
                "master_version": "1.29.4-gke.1043002",
                "self_link": f"{CONTAINER_API}/{project}/locations/{location}/clusters/{name}",
            }
        case "node_pool":
            cluster = str(attrs.get("cluster", "")).rsplit("/", 1)[-1]
            location = attrs.get("location")
            return {
                "instance_group_urls": [
                    f"{COMPUTE_API}/{project}/zones/{location}-a/instanceGroupManagers/"
                    f"gke-{cluster}-{name}-grp"
                ]
            }
        case "service_account":
            return {
                "email": f"{attrs.get('account_id')}@{project}.iam.gserviceaccount.com",
                "unique_id": str(100_000_000_000_000_000_000 + n),
            }
        case "project_iam_member":
            payload = f"{attrs.get('role')}|{attrs.get('member')}|{n}"
            return {"etag": hashlib.sha1(payload.encode("utf-8")).hexdigest()[:12]}
        case "database_instance":
            ip_config = (attrs.get("settings") or {}).get("ip_configuration") or {}
            return {
                "connection_name": f"{project}:{region}:{name}",
                "private_ip_address": (
                    _private_ip(n, 3) if ip_config.get("private_network") else None
                ),
                "public_ip_address": (
                    f"34.{n % 250}.10.{n % 200 + 1}" if ip_config.get("ipv4_enabled") else None
                ),
                "self_link": f"{SQL_API}/{project}/instances/{name}",
            }
        case "database":
            instance = attrs.get("instance")
            return {"self_link": f"{SQL_API}/{project}/instances/{instance}/databases/{name}"}
        case "cache_instance":
            return {
                "host": _private_ip(n, 4),
                "port": 6379,
                "current_location_id": f"{region}-a",
            }
    return {}


@dataclass
class Fault:
    resource_type: str
    op: CloudOp
    error: Exception
    times: int = 1
    name: str | None = None


@dataclass
class CloudCall:
    op: CloudOp
    resource_type: str
    name: str | None
    started: float
    finished: float = 0.0


@dataclass
class _Objects:
    by_type: dict[str, dict[str, dict[str, Any]]] = field(default_factory=dict)
    counter: int = 0


class SimulatedCloud:
    """A thread-safe in-memory cloud, optionally persisted to a JSON file."""

    def __init__(self, path: Path | None = None, *, latency: float = 0.0) -> None:
        self._path = Path(path) if path is not None else None
        self._latency = latency
        self._lock = threading.Lock()
        self._objects = _Objects()
        self._faults: list[Fault] = []
        self._in_flight = 0
        self.max_in_flight = 0
        self.calls: list[CloudCall] = []
        if self._path is not None and self._path.exists():
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            self._objects = _Objects(by_type=raw.get("objects", {}), counter=raw.get("counter", 0))
            logger.debug("Loaded simulated cloud from %s", self._path)

    # ── test hooks ──────────────────────────────────────────────────

    def inject_fault(
        self,
        resource_type: str,
        op: CloudOp,
        error: Exception,
        *,
        times: int = 1,
        name: str | None = None,
    ) -> None:
        """Make the next *times* matching calls raise *error*."""
        with self._lock:
            self._faults.append(Fault(resource_type, op, error, times, name))

    def objects(self, resource_type: str) -> dict[str, dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._objects.by_type.get(resource_type, {}))

    def find(self, resource_type: str, name: str) -> tuple[str, dict[str, Any]] | None:
        for obj_id, attrs in self.objects(resource_type).items():
            if attrs.get("name") == name:
                return obj_id, attrs
        return None

    def mutate(self, resource_type: str, obj_id: str, **changes: Any) -> None:
        """Change an object out of band (drift)."""
        with self._lock:
            self._get(resource_type, obj_id).update(changes)
            self._save()

    def remove(self, resource_type: str, obj_id: str) -> None:
        """Delete an object out of band."""
        with self._lock:
            self._objects.by_type.get(resource_type, {}).pop(obj_id, None)
            self._save()

    # ── API ─────────────────────────────────────────────────────────

    def create(
        self, ctx: EngineContext, resource_type: str, attrs: dict[str, Any]
    ) -> tuple[str, dict[str, Any]]:
        def _create() -> tuple[str, dict[str, Any]]:
            objects = self._objects.by_type.setdefault(resource_type, {})
            identity = self._identity(resource_type, attrs)
            for existing in objects.values():
                if self._identity(resource_type, existing) == identity:
                    raise ConflictError(
                        f"{resource_type} {'/'.join(map(str, identity))} already exists"
                    )
            self._objects.counter += 1
            obj_id = f"{resource_type}-{uuid.uuid4().hex[:12]}"
            live = {
                **copy.deepcopy(attrs),
                **_computed(resource_type, ctx, attrs, self._objects.counter),
                "id": obj_id,
            }
            objects[obj_id] = live
            self._save()
            return obj_id, copy.deepcopy(live)

        return self._call("create", resource_type, attrs.get("name"), _create)

    def read(self, ctx: EngineContext, resource_type: str, obj_id: str) -> dict[str, Any]:
        _ = ctx

        def _read() -> dict[str, Any]:
            return copy.deepcopy(self._get(resource_type, obj_id))

        return self._call("read", resource_type, None, _read)

    def update(
        self, ctx: EngineContext, resource_type: str, obj_id: str, attrs: dict[str, Any]
    ) -> dict[str, Any]:
        def _update() -> dict[str, Any]:
            live = self._get(resource_type, obj_id)
            computed = {k: v for k, v in live.items() if k not in attrs}
            live.clear()
            live.update({**computed, **copy.deepcopy(attrs), "id": obj_id})
            live.update(_computed(resource_type, ctx, live, self._objects.counter))
            self._save()
            return copy.deepcopy(live)

        return self._call("update", resource_type, attrs.get("name"), _update)

    def delete(self, ctx: EngineContext, resource_type: str, obj_id: str) -> None:
        _ = ctx

        def _delete() -> None:
            self._get(resource_type, obj_id)
            del self._objects.by_type[resource_type][obj_id]
            self._save()

        self._call("delete", resource_type, None, _delete)

    # ── internals ───────────────────────────────────────────────────

    @staticmethod
    def _identity(resource_type: str, attrs: dict[str, Any]) -> tuple[Any, ...]:
        keys = _IDENTITY.get(resource_type, ("name",))
        return tuple(attrs.get(k) for k in keys)

    def _get(self, resource_type: str, obj_id: str) -> dict[str, Any]:
        try:
            return self._objects.by_type[resource_type][obj_id]
        except KeyError:
            raise ResourceNotFoundError(f"{resource_type} {obj_id} not found") from None

    def _take_fault(self, resource_type: str, op: CloudOp, name: str | None) -> Exception | None:
        for fault in self._faults:
            if fault.resource_type != resource_type or fault.op != op:
                continue
            if fault.name is not None and fault.name != name:
                continue
            fault.times -= 1
            if fault.times <= 0:
                self._faults.remove(fault)
            return fault.error
        return None

    def _call(
        self, op: CloudOp, resource_type: str, name: str | None, fn: Callable[[], Any]
    ) -> Any:
        call = CloudCall(op=op, resource_type=resource_type, name=name, started=time.monotonic())
        with self._lock:
            self.calls.append(call)
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
        try:
            if self._latency:
                time.sleep(self._latency)
            with self._lock:
                error = self._take_fault(resource_type, op, name)
                if error is not None:
                    logger.debug("Injected fault on %s %s: %s", op, resource_type, error)
                    raise error
                return fn()
        finally:
            with self._lock:
                self._in_flight -= 1
                call.finished = time.monotonic()

    def _save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        payload = {"objects": self._objects.by_type, "counter": self._objects.counter}
        tmp.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n", encoding="utf-8")
        with contextlib.suppress(FileNotFoundError):
            tmp.replace(self._path)


class SimulatedProvider(ResourceProvider[Resource]):
    """``ResourceProvider`` for one resource type backed by a ``SimulatedCloud``."""

    def __init__(self, cloud: SimulatedCloud, model: type[Resource]) -> None:
        self._cloud = cloud
        self._resource_type = model.resource_type
        self._computed = computed_fields(model)

    def _payload(self, desired: Resource) -> dict[str, Any]:
        return desired.model_dump(mode="json", exclude=self._computed)

    def create(self, ctx: EngineContext, desired: Resource) -> tuple[str, dict[str, Any]]:
        return self._cloud.create(ctx, self._resource_type, self._payload(desired))

    def read(self, ctx: EngineContext, record: LiveRecord) -> dict[str, Any]:
        return self._cloud.read(ctx, self._resource_type, record.id)

    def update(self, ctx: EngineContext, desired: Resource, record: LiveRecord) -> dict[str, Any]:
        return self._cloud.update(ctx, self._resource_type, record.id, self._payload(desired))

    def delete(self, ctx: EngineContext, record: LiveRecord) -> None:
        self._cloud.delete(ctx, self._resource_type, record.id)


__all__ = ["CloudCall", "Fault", "ProviderError", "SimulatedCloud", "SimulatedProvider"]

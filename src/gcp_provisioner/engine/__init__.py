"""Plan and apply engine for declared cloud resources."""

from gcp_provisioner.engine.builder import (
    DependencyEdge,
    EdgeKind,
    GraphBuilder,
    ResourceDeclaration,
    ResourceGraph,
    ResourceNode,
)
from gcp_provisioner.engine.drift import DriftDetector
from gcp_provisioner.engine.engine import ProvisionEngine
from gcp_provisioner.engine.errors import (
    ApplyCanceled,
    ConflictError,
    CycleError,
    DeletionProtectedError,
    DuplicateNameError,
    EngineError,
    LockHeldError,
    PermanentProviderError,
    ProviderError,
    QuotaExceededError,
    ResourceNotFoundError,
    SchemaViolationError,
    StalePlanError,
    StateConflictError,
    StateLockError,
    TransientProviderError,
    UnknownResourceTypeError,
    UnresolvedReferenceError,
    ValidationError,
)
from gcp_provisioner.engine.executor import ApplyExecutor
from gcp_provisioner.engine.planner import Planner
from gcp_provisioner.engine.provider import EngineContext, ResourceProvider
from gcp_provisioner.engine.registry import ResourceTypeRegistration, ResourceTypeRegistry
from gcp_provisioner.engine.retry import RetryPolicy
from gcp_provisioner.engine.schema import AttributeSchema, Mutability, ResourceType, ValueKind
from gcp_provisioner.engine.state_store import FileStateStore, MemoryStateStore, StateStore
from gcp_provisioner.engine.types import (
    Action,
    ApplyResult,
    ApplyStatus,
    DriftReport,
    DriftStatus,
    Plan,
    PlanMetadata,
    PlanStep,
    ResourceDrift,
    StepResult,
    StepStatus,
)

__all__ = [
    "Action",
    "ApplyCanceled",
    "ApplyExecutor",
    "ApplyResult",
    "ApplyStatus",
    "AttributeSchema",
    "ConflictError",
    "CycleError",
    "DeletionProtectedError",
    "DependencyEdge",
    "DriftDetector",
    "DriftReport",
    "DriftStatus",
    "DuplicateNameError",
    "EdgeKind",
    "EngineContext",
    "EngineError",
    "FileStateStore",
    "GraphBuilder",
    "LockHeldError",
    "MemoryStateStore",
    "Mutability",
    "PermanentProviderError",
    "Plan",
    "PlanMetadata",
    "PlanStep",
    "Planner",
    "ProviderError",
    "ProvisionEngine",
    "QuotaExceededError",
    "ResourceDeclaration",
    "ResourceDrift",
    "ResourceGraph",
    "ResourceNode",
    "ResourceNotFoundError",
    "ResourceProvider",
    "ResourceType",
    "ResourceTypeRegistration",
    "ResourceTypeRegistry",
    "RetryPolicy",
    "SchemaViolationError",
    "StalePlanError",
    "StateConflictError",
    "StateLockError",
    "StateStore",
    "StepResult",
    "StepStatus",
    "TransientProviderError",
    "UnknownResourceTypeError",
    "UnresolvedReferenceError",
    "ValidationError",
    "ValueKind",
]

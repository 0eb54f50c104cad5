"""Apply executor: run a plan's operation graph with bounded parallelism."""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Literal

from gcp_provisioner.engine.errors import ApplyCanceled, DeletionProtectedError, StateLockError
from gcp_provisioner.engine.graph import DependencyGraph
from gcp_provisioner.engine.operations import ApplyRuntime, build_operations
from gcp_provisioner.engine.retry import RetryPolicy
from gcp_provisioner.engine.types import Action, ApplyResult, StepResult, StepStatus

if TYPE_CHECKING:
    from gcp_provisioner.engine.operations import Operation
    from gcp_provisioner.engine.provider import EngineContext
    from gcp_provisioner.engine.registry import ResourceTypeRegistry
    from gcp_provisioner.engine.state_store import StateStore
    from gcp_provisioner.engine.types import Plan, PlanStep

logger = logging.getLogger(__name__)

ProgressEvent = Literal["start", "done", "failed", "blocked", "skipped"]
ProgressCallback = Callable[["PlanStep", ProgressEvent], None]

DEFAULT_PARALLELISM = 4


class ApplyExecutor:
    """Execute plans against providers, committing each step as it completes.

    Operations whose dependencies have all committed are dispatched, in plan
    order, to a thread pool of ``parallelism`` workers. The coordinating
    thread only waits for the next completion; it never blocks on a single
    provider call. A failed operation marks its transitive dependents
    ``skipped`` while independent operations continue.
    """

    def __init__(
        self,
        *,
        registry: ResourceTypeRegistry,
        store: StateStore,
        ctx: EngineContext,
        parallelism: int = DEFAULT_PARALLELISM,
        retry: RetryPolicy | None = None,
    ) -> None:
        if parallelism < 1:
            raise ValueError("parallelism must be at least 1")
        self._registry = registry
        self._store = store
        self._ctx = ctx
        self._parallelism = parallelism
        self._retry = retry or RetryPolicy()

    def apply(
        self,
        plan: Plan,
        *,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> ApplyResult:
        """Apply *plan*. The store must be in an open session.

        Setting *cancel* stops dispatching: operations already running finish
        and commit, the rest are reported ``not-started``. A ``KeyboardInterrupt``
        does the same and then raises ``ApplyCanceled`` carrying the result.
        """
        if not self._store.in_session:
            raise StateLockError("Apply requires an open state session")

        cancel = cancel or threading.Event()
        ops = build_operations(plan, self._store.load())
        run = _ApplyRun(plan, ops, progress)
        counter = itertools.count(1)
        seq_lock = threading.Lock()

        def next_seq() -> int:
            with seq_lock:
                return next(counter)

        runtime = ApplyRuntime(
            registry=self._registry,
            store=self._store,
            ctx=self._ctx,
            retry=self._retry,
            sequence=next_seq,
        )

        logger.info("Applying %d operations (parallelism=%d)", len(ops), self._parallelism)
        interrupted = False
        with ThreadPoolExecutor(max_workers=self._parallelism, thread_name_prefix="apply") as pool:
            in_flight: dict[Future[object], str] = {}
            while True:
                if not cancel.is_set():
                    for key in run.eligible():
                        if len(in_flight) >= self._parallelism:
                            break
                        run.dispatched(key, next_seq())
                        in_flight[pool.submit(ops[key].run, runtime)] = key
                if not in_flight:
                    break
                try:
                    done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                except KeyboardInterrupt:
                    logger.warning(
                        "Interrupted; waiting for %d in-flight operation(s)", len(in_flight)
                    )
                    cancel.set()
                    interrupted = True
                    continue
                for future in done:
                    key = in_flight.pop(future)
                    exc = future.exception()
                    if exc is None:
                        run.succeeded(key, runtime)
                    else:
                        run.failed(key, exc, runtime)

        result = run.result(canceled=cancel.is_set(), runtime=runtime)
        logger.info("Apply finished: %s %s", result.status.value, result.summary())
        if interrupted:
            raise ApplyCanceled("Apply canceled", result=result)
        return result


class _ApplyRun:
    """Bookkeeping for one apply: readiness, step outcomes, and progress events."""

    def __init__(
        self,
        plan: Plan,
        ops: dict[str, Operation],
        progress: ProgressCallback | None,
    ) -> None:
        self._ops = ops
        self._progress = progress
        positions = {s.key: i for i, s in enumerate(plan.steps)}
        graph = DependencyGraph(
            ops,
            {k: op.deps for k, op in ops.items()},
            priorities={k: positions[op.step.key] for k, op in ops.items()},
        )
        self._graph = graph
        self._order = graph.topological_order()
        self._waiting = {k: set(op.deps) for k, op in ops.items()}
        self._pending = set(ops)
        self._ops_left: dict[str, int] = {}
        for op in ops.values():
            self._ops_left[op.step.key] = self._ops_left.get(op.step.key, 0) + 1
        self._results: dict[str, StepResult] = {
            s.key: StepResult(address=s.key, resource_type=s.resource_type, action=s.action)
            for s in plan.steps
            if s.action != Action.NOOP
        }
        self._steps = {s.key: s for s in plan.steps}

    def _emit(self, step_key: str, event: ProgressEvent) -> None:
        if self._progress is not None:
            self._progress(self._steps[step_key], event)

    def eligible(self) -> list[str]:
        return [k for k in self._order if k in self._pending and not self._waiting[k]]

    def dispatched(self, key: str, seq: int) -> None:
        self._pending.discard(key)
        step_key = self._ops[key].step.key
        res = self._results[step_key]
        if res.dispatch_seq is None:
            res.dispatch_seq = seq
            res.dispatched_at = datetime.now(UTC)
            self._emit(step_key, "start")
        logger.debug("Dispatched %s", key)

    def succeeded(self, key: str, runtime: ApplyRuntime) -> None:
        step_key = self._ops[key].step.key
        for child in self._graph.dependents(key):
            self._waiting[child].discard(key)
        self._ops_left[step_key] -= 1
        res = self._results[step_key]
        if self._ops_left[step_key] or res.status != StepStatus.NOT_STARTED:
            return
        res.status = StepStatus.SUCCESS
        # The commit dependents wait on, not the trailing deposed delete.
        res.commit_seq = runtime.commit_seqs.get(step_key, runtime.commit_seqs.get(key))
        res.finished_at = datetime.now(UTC)
        record = runtime.record(self._ops[key].step.address)
        if record is not None and self._ops[key].step.action != Action.DESTROY:
            res.record_version = record.version
        logger.info("%s: %s complete", step_key, res.action.value)
        self._emit(step_key, "done")

    def failed(self, key: str, exc: BaseException, runtime: ApplyRuntime) -> None:
        step_key = self._ops[key].step.key
        res = self._results[step_key]
        blocked = isinstance(exc, DeletionProtectedError)
        res.status = StepStatus.BLOCKED if blocked else StepStatus.FAILED
        res.error = str(exc)
        res.finished_at = datetime.now(UTC)
        if blocked:
            logger.warning("%s: %s", step_key, exc)
        else:
            logger.error("%s: %s failed: %s", step_key, res.action.value, exc)
        self._emit(step_key, "blocked" if blocked else "failed")

        for child in sorted(self._graph.transitive_dependents(key)):
            if child not in self._pending:
                continue
            self._pending.discard(child)
            child_step = self._ops[child].step.key
            child_res = self._results[child_step]
            if child_res.status != StepStatus.NOT_STARTED:
                continue
            child_res.status = StepStatus.SKIPPED
            child_res.error = f"dependency {step_key} did not complete"
            logger.info("%s: skipped (dependency %s did not complete)", child_step, step_key)
            self._emit(child_step, "skipped")

    def result(self, *, canceled: bool, runtime: ApplyRuntime) -> ApplyResult:
        for op in self._ops.values():
            res = self._results[op.step.key]
            res.attempts = sum(
                runtime.attempts.get(k, 0)
                for k, other in self._ops.items()
                if other.step.key == op.step.key
            )
        return ApplyResult(steps=list(self._results.values()), canceled=canceled)

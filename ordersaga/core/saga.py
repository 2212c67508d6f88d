"""
Declarative saga engine.

A saga is a chain of steps, each optionally paired with a compensation that
semantically undoes it. Steps run one after another in dependency order. When
a step fails, the compensations of the steps that already completed run in
reverse order, and then the original error is re-raised to the caller.

Quick Start:
    >>> from ordersaga.core.saga import Saga, action, compensate
    >>>
    >>> class TransferSaga(Saga):
    ...     saga_name = "transfer"
    ...
    ...     @action("debit")
    ...     async def debit(self, ctx):
    ...         return {"debit_id": await Ledger.debit(ctx["amount"])}
    ...
    ...     @compensate("debit")
    ...     async def undo_debit(self, ctx):
    ...         await Ledger.credit(ctx["amount"])
    ...
    ...     @action("credit", depends_on=["debit"])
    ...     async def credit(self, ctx):
    ...         return {"credit_id": await Ledger.credit(ctx["amount"])}
    >>>
    >>> ctx = await TransferSaga().run({"amount": 10})

Steps marked ``best_effort=True`` are side channels: their failures and
timeouts are logged and discarded, they never trigger compensation, and
they are never compensated themselves.
"""

import asyncio
import inspect
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from ordersaga.core.exceptions import SagaDefinitionError, SagaTimeoutError
from ordersaga.core.logger import get_logger
from ordersaga.core.types import SagaResult, SagaStatus, SagaStepStatus

if TYPE_CHECKING:  # pragma: no cover
    from ordersaga.core.config import OrderSagaConfig

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])
T = TypeVar("T")

StepFn = Callable[[dict[str, Any]], Awaitable[Any]]

DEFAULT_STEP_TIMEOUT = 60.0
DEFAULT_COMPENSATION_TIMEOUT = 30.0

_MARKER_ATTR = "__saga_step__"


async def call_with_timeout(awaitable: Awaitable[T], timeout: float, operation: str) -> T:
    """
    Await ``awaitable`` for at most ``timeout`` seconds.

    Raises:
        SagaTimeoutError: If the call did not finish in time
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except TimeoutError as e:
        raise SagaTimeoutError(operation, timeout) from e


@dataclass(frozen=True)
class _StepMarker:
    """What a decorator recorded on a method. ``kind`` is "action" or "compensation"."""

    kind: str
    step: str
    depends_on: tuple[str, ...] = ()
    timeout_seconds: float | None = None
    max_retries: int | None = None
    best_effort: bool = False


def action(
    name: str,
    depends_on: list[str] | None = None,
    timeout_seconds: float | None = None,
    best_effort: bool = False,
) -> Callable[[F], F]:
    """
    Mark a method as a saga step.

    The method receives the saga context and may return a dict, which is
    merged into the context for later steps.

    Args:
        name: Unique step name
        depends_on: Steps that must complete before this one
        timeout_seconds: Bound for this step. When None, the configured
            timeout for this step name is used, else 60s.
        best_effort: Failures are logged and ignored; no compensation
    """

    def decorator(func: F) -> F:
        setattr(
            func,
            _MARKER_ATTR,
            _StepMarker("action", name, tuple(depends_on or ()), timeout_seconds, None, best_effort),
        )
        return func

    return decorator


def compensate(
    for_step: str,
    timeout_seconds: float | None = None,
    max_retries: int | None = None,
) -> Callable[[F], F]:
    """
    Mark a method as the compensation of ``for_step``.

    Compensations must be idempotent: a failed attempt is retried up to
    ``max_retries`` more times (defaulting to the saga's configured value).

    Example:
        >>> @compensate("reserve_inventory")
        ... async def release(self, ctx):
        ...     await inventory.release(ctx["reservation_id"])
    """

    def decorator(func: F) -> F:
        marker = _StepMarker("compensation", for_step, (), timeout_seconds, max_retries)
        setattr(func, _MARKER_ATTR, marker)
        return func

    return decorator


@dataclass
class SagaStep:
    """A step bound to a saga instance, with its compensation if any."""

    name: str
    run: StepFn
    depends_on: tuple[str, ...] = ()
    timeout_seconds: float | None = None
    best_effort: bool = False
    undo: StepFn | None = None
    undo_timeout_seconds: float | None = None
    undo_max_retries: int | None = None


@dataclass
class _RunState:
    saga_id: str = ""
    context: dict[str, Any] = field(default_factory=dict)
    completed: list[str] = field(default_factory=list)
    current: str | None = None


class Saga:
    """
    Base class for saga definitions.

    Subclass it and declare steps with ``@action`` and ``@compensate``. Steps
    with no dependency between them run in declaration order. An instance
    holds the state of one run; create a new instance for every run.

    Class Attributes:
        saga_name: Name used in logs and metrics (defaults to the class name)
        listeners: SagaListener instances to notify (None = use config)
    """

    saga_name: str | None = None
    listeners: list | None = None

    def __init__(self, config: "OrderSagaConfig | None" = None):
        """
        Args:
            config: Supplies listeners, step and compensation timeouts by step
                name and the compensation retry policy. Without one, steps get
                the default timeouts and compensations are attempted once.
        """
        self._config = config
        self._step_timeouts: dict[str, float] = config.step_timeouts() if config else {}
        self._compensation_timeouts: dict[str, float] = (
            config.compensation_timeouts() if config else {}
        )
        self._compensation_max_retries = config.compensation_max_retries if config else 0
        self._compensation_backoff = config.compensation_backoff if config else 0.0
        if self.listeners is not None:
            self._listeners = list(self.listeners)
        else:
            self._listeners = list(config.listeners) if config else []

        self._steps: dict[str, SagaStep] = self._collect_steps()
        self._status = SagaStatus.PENDING
        self._run = _RunState()
        self.step_statuses: dict[str, SagaStepStatus] = {}
        self.result: SagaResult | None = None

    # =========================================================================
    # Definition
    # =========================================================================

    def _collect_steps(self) -> dict[str, SagaStep]:
        # Base class attributes first, each resolved on the concrete class so overrides win
        attr_names = dict.fromkeys(
            attr_name for cls in reversed(type(self).__mro__) for attr_name in vars(cls)
        )
        actions: list[tuple[str, _StepMarker]] = []
        compensations: list[tuple[str, _StepMarker]] = []
        for attr_name in attr_names:
            marker = getattr(inspect.getattr_static(type(self), attr_name), _MARKER_ATTR, None)
            if isinstance(marker, _StepMarker):
                bucket = actions if marker.kind == "action" else compensations
                bucket.append((attr_name, marker))

        steps: dict[str, SagaStep] = {}
        for attr_name, marker in actions:
            if marker.step in steps:
                msg = f"Step '{marker.step}' is defined more than once"
                raise SagaDefinitionError(msg)
            steps[marker.step] = SagaStep(
                name=marker.step,
                run=getattr(self, attr_name),
                depends_on=marker.depends_on,
                timeout_seconds=marker.timeout_seconds,
                best_effort=marker.best_effort,
            )

        for attr_name, marker in compensations:
            target = steps.get(marker.step)
            if target is None:
                msg = f"Compensation '{attr_name}' targets unknown step '{marker.step}'"
                raise SagaDefinitionError(msg)
            target.undo = getattr(self, attr_name)
            target.undo_timeout_seconds = marker.timeout_seconds
            target.undo_max_retries = marker.max_retries

        return steps

    @property
    def steps(self) -> list[SagaStep]:
        return list(self._steps.values())

    def execution_order(self) -> list[SagaStep]:
        """
        Order steps so each runs after its dependencies.

        Raises:
            SagaDefinitionError: On unknown dependencies or cycles
        """
        for s in self._steps.values():
            unknown = [d for d in s.depends_on if d not in self._steps]
            if unknown:
                msg = f"Step '{s.name}' depends on unknown steps: {unknown}"
                raise SagaDefinitionError(msg)

        ordered: list[SagaStep] = []
        placed: set[str] = set()
        pending = list(self._steps.values())
        while pending:
            ready = [s for s in pending if placed.issuperset(s.depends_on)]
            if not ready:
                names = [s.name for s in pending]
                msg = f"Circular dependency detected between steps {names}"
                raise SagaDefinitionError(msg)
            for s in ready:
                ordered.append(s)
                placed.add(s.name)
                pending.remove(s)
        return ordered

    # =========================================================================
    # Run state
    # =========================================================================

    @property
    def name(self) -> str:
        return self.saga_name or type(self).__name__

    @property
    def saga_id(self) -> str:
        return self._run.saga_id

    @property
    def status(self) -> SagaStatus:
        return self._status

    @property
    def current_step(self) -> str | None:
        """Name of the step currently executing (or the last one entered)."""
        return self._run.current

    @property
    def completed_steps(self) -> list[str]:
        return list(self._run.completed)

    # =========================================================================
    # Execution
    # =========================================================================

    async def run(
        self, initial_context: dict[str, Any], saga_id: str | None = None
    ) -> dict[str, Any]:
        """
        Execute this saga.

        Args:
            initial_context: Initial data for the saga (copied, not mutated)
            saga_id: Identifier for tracing; generated when omitted

        Returns:
            Final context with all step results merged

        Raises:
            Exception: The failing step's error, after compensations ran. If
                the error has a ``compensation_errors`` list, failed
                compensations are appended to it.
        """
        if self._status is not SagaStatus.PENDING:
            msg = "A saga instance can only be run once; create a new instance"
            raise RuntimeError(msg)

        order = self.execution_order()
        run_id = saga_id or initial_context.get("saga_id") or str(uuid.uuid4())
        self._run = _RunState(saga_id=run_id, context={**initial_context, "saga_id": run_id})
        self.step_statuses = {name: SagaStepStatus.PENDING for name in self._steps}
        ctx = self._run.context
        started = time.perf_counter()

        self._status = SagaStatus.EXECUTING
        await self._emit("on_saga_start", self.name, run_id, ctx)

        try:
            for step in order:
                await self._execute_step(step)
        except Exception as e:
            self._status = SagaStatus.COMPENSATING
            compensated, errors = await self._compensate()
            self._status = SagaStatus.FAILED
            if isinstance(getattr(e, "compensation_errors", None), list):
                e.compensation_errors.extend(errors)

            self.result = self._result(order, started, e, compensated, errors)
            await self._emit("on_saga_failed", self.name, run_id, ctx, e)
            raise

        self._status = SagaStatus.COMPLETED
        self.result = self._result(order, started)
        await self._emit("on_saga_complete", self.name, run_id, ctx)
        return ctx

    def _result(
        self,
        order: list[SagaStep],
        started: float,
        error: Exception | None = None,
        compensated: list[str] | None = None,
        errors: list[Exception] | None = None,
    ) -> SagaResult:
        return SagaResult(
            success=error is None,
            saga_name=self.name,
            status=self._status,
            completed_steps=len(self._run.completed),
            total_steps=len(order),
            error=error,
            execution_time=time.perf_counter() - started,
            context=self._run.context,
            compensated_step_names=compensated or [],
            compensation_errors=errors or [],
        )

    async def _emit(self, event: str, *args: Any) -> None:
        """Call ``event`` on every listener. Listener errors are logged, never raised."""
        for listener in self._listeners:
            handler = getattr(listener, event, None)
            if handler is None:
                continue
            try:
                outcome = handler(*args)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.warning(f"Listener {type(listener).__name__}.{event} failed: {e}")

    async def _execute_step(self, step: SagaStep) -> None:
        ctx = self._run.context
        self._run.current = step.name
        self.step_statuses[step.name] = SagaStepStatus.EXECUTING
        await self._emit("on_step_enter", self.name, step.name, ctx)

        timeout = step.timeout_seconds or self._step_timeouts.get(step.name, DEFAULT_STEP_TIMEOUT)
        try:
            result = await call_with_timeout(step.run(ctx), timeout, step.name)
        except Exception as e:
            await self._emit("on_step_failure", self.name, step.name, ctx, e)
            if not step.best_effort:
                self.step_statuses[step.name] = SagaStepStatus.FAILED
                raise
            self.step_statuses[step.name] = SagaStepStatus.SKIPPED
            logger.warning(f"Best-effort step '{step.name}' failed, ignoring: {e}")
            return

        if isinstance(result, dict):
            ctx.update(result)
        self.step_statuses[step.name] = SagaStepStatus.COMPLETED
        self._run.completed.append(step.name)
        await self._emit("on_step_success", self.name, step.name, ctx, result)

    async def _compensate(self) -> tuple[list[str], list[Exception]]:
        """
        Undo completed steps, newest first.

        Every compensation is attempted even if an earlier one failed.

        Returns:
            (names of compensated steps, errors of compensations that failed)
        """
        compensated: list[str] = []
        errors: list[Exception] = []
        for name in reversed(self._run.completed):
            step = self._steps[name]
            if step.undo is None or step.best_effort:
                continue
            error = await self._undo(step)
            if error is None:
                compensated.append(name)
            else:
                errors.append(error)
        return compensated, errors

    async def _undo(self, step: SagaStep) -> Exception | None:
        """Run one compensation with bounded retries; return its last error, if any."""
        ctx = self._run.context
        timeout = (
            step.undo_timeout_seconds
            or self._compensation_timeouts.get(step.name)
            or self._step_timeouts.get(step.name, DEFAULT_COMPENSATION_TIMEOUT)
        )
        retries = (
            step.undo_max_retries
            if step.undo_max_retries is not None
            else self._compensation_max_retries
        )

        self.step_statuses[step.name] = SagaStepStatus.COMPENSATING
        await self._emit("on_compensation_start", self.name, step.name, ctx)

        last_error: Exception | None = None
        for attempt in range(1, retries + 2):
            if attempt > 1:
                await asyncio.sleep(self._compensation_backoff * 2 ** (attempt - 2))
            try:
                await call_with_timeout(step.undo(ctx), timeout, f"compensate:{step.name}")  # type: ignore[misc]
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Compensation for '{step.name}' failed (attempt {attempt}/{retries + 1}): {e}"
                )
                continue

            self.step_statuses[step.name] = SagaStepStatus.COMPENSATED
            ctx[f"__{step.name}_compensated"] = True
            await self._emit("on_compensation_complete", self.name, step.name, ctx)
            return None

        self.step_statuses[step.name] = SagaStepStatus.FAILED
        ctx[f"__{step.name}_compensation_error"] = str(last_error)
        logger.critical(f"Compensation FAILED for '{step.name}': {last_error}")
        await self._emit("on_compensation_failed", self.name, step.name, ctx, last_error)
        return last_error

    def __repr__(self) -> str:
        return f"{type(self).__name__}(steps={list(self._steps)})"

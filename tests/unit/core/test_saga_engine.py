"""
Tests for the declarative saga engine
"""

import asyncio

import pytest

from ordersaga.core.config import OrderSagaConfig
from ordersaga.core.exceptions import (
    OrderSagaError,
    SagaDefinitionError,
    SagaTimeoutError,
    UpstreamUnavailable,
)
from ordersaga.core.listeners import SagaListener
from ordersaga.core.saga import Saga, action, call_with_timeout, compensate
from ordersaga.core.types import SagaStatus, SagaStepStatus


def quiet_config(**overrides):
    """No listeners and no backoff unless a test asks for them"""
    return OrderSagaConfig(**{"logging": False, "compensation_backoff": 0.0, **overrides})


class ThreeStepSaga(Saga):
    """a -> b -> c, each compensable, with a call journal"""

    saga_name = "three-step"

    def __init__(self, fail_at=None, config=None):
        self.journal = []
        self.fail_at = fail_at
        super().__init__(config=config or quiet_config())

    async def _do(self, name):
        self.journal.append(name)
        if name == self.fail_at:
            raise OrderSagaError(f"{name} exploded")
        return {f"{name}_done": True}

    @action("a")
    async def step_a(self, ctx):
        return await self._do("a")

    @compensate("a")
    async def undo_a(self, ctx):
        self.journal.append("undo_a")

    @action("b", depends_on=["a"])
    async def step_b(self, ctx):
        return await self._do("b")

    @compensate("b")
    async def undo_b(self, ctx):
        self.journal.append("undo_b")

    @action("c", depends_on=["b"])
    async def step_c(self, ctx):
        return await self._do("c")

    @compensate("c")
    async def undo_c(self, ctx):
        self.journal.append("undo_c")


class TestSequentialExecution:
    """Steps run in dependency order and merge their results into the context"""

    @pytest.mark.asyncio
    async def test_runs_all_steps_in_order(self):
        """All steps run in order and their results land in the context"""
        saga = ThreeStepSaga()
        ctx = await saga.run({"seed": 1})

        assert saga.journal == ["a", "b", "c"]
        assert ctx["seed"] == 1
        assert ctx["a_done"] and ctx["b_done"] and ctx["c_done"]
        assert ctx["saga_id"] == saga.saga_id
        assert saga.status is SagaStatus.COMPLETED
        assert saga.result.success
        assert saga.result.is_completed
        assert saga.completed_steps == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_run_does_not_mutate_initial_context(self):
        """The caller's context dict is left untouched"""
        initial = {"seed": 1}
        await ThreeStepSaga().run(initial)
        assert initial == {"seed": 1}

    @pytest.mark.asyncio
    async def test_instance_runs_only_once(self):
        """A saga instance cannot be run twice"""
        saga = ThreeStepSaga()
        await saga.run({})
        with pytest.raises(RuntimeError, match="only be run once"):
            await saga.run({})

    @pytest.mark.asyncio
    async def test_explicit_saga_id_is_used(self):
        """A given saga id is used instead of a generated one"""
        saga = ThreeStepSaga()
        ctx = await saga.run({}, saga_id="fixed-id")
        assert ctx["saga_id"] == "fixed-id"


class TestCompensation:
    """Failures undo completed steps in reverse order, then re-raise"""

    @pytest.mark.asyncio
    async def test_failure_compensates_in_reverse_order(self):
        """Completed steps are undone newest first"""
        saga = ThreeStepSaga(fail_at="c")

        with pytest.raises(OrderSagaError, match="c exploded"):
            await saga.run({})

        assert saga.journal == ["a", "b", "c", "undo_b", "undo_a"]
        assert saga.status is SagaStatus.FAILED
        assert saga.step_statuses["a"] is SagaStepStatus.COMPENSATED
        assert saga.step_statuses["b"] is SagaStepStatus.COMPENSATED
        assert saga.step_statuses["c"] is SagaStepStatus.FAILED
        assert saga.result.compensated_step_names == ["b", "a"]

    @pytest.mark.asyncio
    async def test_first_step_failure_compensates_nothing(self):
        """Nothing is undone when the first step fails"""
        saga = ThreeStepSaga(fail_at="a")
        with pytest.raises(OrderSagaError):
            await saga.run({})
        assert saga.journal == ["a"]

    @pytest.mark.asyncio
    async def test_compensation_is_retried(self):
        """A failing compensation is retried"""
        attempts = []

        class FlakyUndo(Saga):
            @action("reserve")
            async def reserve(self, ctx):
                return {"reserved": True}

            @compensate("reserve")
            async def release(self, ctx):
                attempts.append(1)
                if len(attempts) < 2:
                    raise ConnectionError("blip")

            @action("charge", depends_on=["reserve"])
            async def charge(self, ctx):
                raise OrderSagaError("declined")

        saga = FlakyUndo(config=quiet_config(compensation_max_retries=2))
        with pytest.raises(OrderSagaError) as exc_info:
            await saga.run({})

        assert len(attempts) == 2
        assert exc_info.value.compensation_errors == []
        assert saga.step_statuses["reserve"] is SagaStepStatus.COMPENSATED

    @pytest.mark.asyncio
    async def test_exhausted_compensation_is_attached_to_error(self):
        """Compensation that never succeeds is attached to the raised error"""
        class BrokenUndo(Saga):
            @action("reserve")
            async def reserve(self, ctx):
                return None

            @compensate("reserve")
            async def release(self, ctx):
                raise ConnectionError("inventory down")

            @action("charge", depends_on=["reserve"])
            async def charge(self, ctx):
                raise OrderSagaError("declined")

        saga = BrokenUndo(config=quiet_config(compensation_max_retries=1))
        with pytest.raises(OrderSagaError, match="declined") as exc_info:
            await saga.run({})

        errors = exc_info.value.compensation_errors
        assert len(errors) == 1
        assert isinstance(errors[0], ConnectionError)
        assert saga.result.compensation_errors == errors
        assert not saga.result.is_compensation_clean
        assert "__reserve_compensation_error" in saga.result.context


class TestTimeouts:
    """Every step is bounded; a timeout is a step failure"""

    @pytest.mark.asyncio
    async def test_step_timeout_raises_and_compensates(self):
        """A step timeout fails the run and undoes earlier steps"""
        undone = []

        class SlowCharge(Saga):
            @action("reserve")
            async def reserve(self, ctx):
                return None

            @compensate("reserve")
            async def release(self, ctx):
                undone.append("reserve")

            @action("charge", depends_on=["reserve"], timeout_seconds=0.01)
            async def charge(self, ctx):
                await asyncio.sleep(1)

        with pytest.raises(SagaTimeoutError) as exc_info:
            await SlowCharge(config=quiet_config()).run({})

        assert isinstance(exc_info.value, UpstreamUnavailable)
        assert exc_info.value.operation == "charge"
        assert undone == ["reserve"]

    @pytest.mark.asyncio
    async def test_configured_step_timeout_applies_by_name(self):
        """Configured timeouts apply to steps by name"""
        class SlowPayment(Saga):
            @action("charge_payment")
            async def charge(self, ctx):
                await asyncio.sleep(1)

        with pytest.raises(SagaTimeoutError):
            await SlowPayment(config=quiet_config(payment_timeout=0.01)).run({})

    @pytest.mark.asyncio
    async def test_call_with_timeout(self):
        """call_with_timeout returns the result or raises a timeout"""
        assert await call_with_timeout(asyncio.sleep(0, result=5), 1, "fast") == 5
        with pytest.raises(SagaTimeoutError, match="'slow' timed out"):
            await call_with_timeout(asyncio.sleep(1), 0.01, "slow")


class TestBestEffortSteps:
    """Side-channel steps never fail the saga"""

    @pytest.mark.asyncio
    async def test_best_effort_failure_is_skipped(self):
        """A failing best-effort step is skipped"""
        class WithNotify(Saga):
            @action("persist")
            async def persist(self, ctx):
                return {"order_id": "O1"}

            @action("notify", depends_on=["persist"], best_effort=True)
            async def notify(self, ctx):
                raise ConnectionError("smtp down")

        saga = WithNotify(config=quiet_config())
        ctx = await saga.run({})

        assert ctx["order_id"] == "O1"
        assert saga.status is SagaStatus.COMPLETED
        assert saga.step_statuses["notify"] is SagaStepStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_best_effort_timeout_is_skipped(self):
        """A timed out best-effort step is skipped"""
        class SlowAudit(Saga):
            @action("audit", best_effort=True, timeout_seconds=0.01)
            async def audit(self, ctx):
                await asyncio.sleep(1)

        saga = SlowAudit(config=quiet_config())
        await saga.run({})
        assert saga.step_statuses["audit"] is SagaStepStatus.SKIPPED


class TestDefinitionErrors:
    """Invalid saga definitions are rejected"""

    def test_duplicate_step_names(self):
        """Two steps with one name are rejected"""
        class Duplicated(Saga):
            @action("same")
            async def first(self, ctx):
                return None

            @action("same")
            async def second(self, ctx):
                return None

        with pytest.raises(SagaDefinitionError, match="more than once"):
            Duplicated()

    def test_compensation_for_unknown_step(self):
        """A compensation must belong to a declared step"""
        class Orphan(Saga):
            @action("real")
            async def real(self, ctx):
                return None

            @compensate("imaginary")
            async def undo(self, ctx):
                return None

        with pytest.raises(SagaDefinitionError, match="unknown step"):
            Orphan()

    @pytest.mark.asyncio
    async def test_unknown_dependency(self):
        """Depending on an undeclared step is rejected"""
        class Dangling(Saga):
            @action("a", depends_on=["ghost"])
            async def a(self, ctx):
                return None

        with pytest.raises(SagaDefinitionError, match="unknown steps"):
            await Dangling().run({})

    def test_cycle_detected(self):
        """Circular dependencies are rejected"""
        class Cyclic(Saga):
            @action("a", depends_on=["b"])
            async def a(self, ctx):
                return None

            @action("b", depends_on=["a"])
            async def b(self, ctx):
                return None

        with pytest.raises(SagaDefinitionError, match="Circular"):
            Cyclic().execution_order()


class TestStepCollection:
    """Steps come from decorated methods across the class hierarchy"""

    def test_independent_steps_keep_declaration_order(self):
        """Sibling steps run in declaration order"""
        class Fanout(Saga):
            @action("persist")
            async def persist(self, ctx):
                return None

            @action("notify", depends_on=["persist"])
            async def notify(self, ctx):
                return None

            @action("audit", depends_on=["persist"])
            async def audit(self, ctx):
                return None

        order = [s.name for s in Fanout().execution_order()]
        assert order == ["persist", "notify", "audit"]

    @pytest.mark.asyncio
    async def test_subclass_inherits_and_extends_steps(self):
        """Subclasses keep inherited steps and may add more"""
        class Extended(ThreeStepSaga):
            @action("d", depends_on=["c"])
            async def step_d(self, ctx):
                return await self._do("d")

        saga = Extended()
        await saga.run({})
        assert saga.journal == ["a", "b", "c", "d"]

    @pytest.mark.asyncio
    async def test_subclass_override_replaces_step(self):
        """Redeclaring a step in a subclass replaces it"""
        class Overridden(ThreeStepSaga):
            @action("b", depends_on=["a"])
            async def step_b(self, ctx):
                self.journal.append("b2")

        saga = Overridden()
        await saga.run({})
        assert saga.journal == ["a", "b2", "c"]

    def test_compensation_is_attached_to_its_step(self):
        """A compensation is bound to the step it names"""
        saga = ThreeStepSaga()
        steps = {s.name: s for s in saga.steps}
        assert steps["a"].undo == saga.undo_a
        assert steps["c"].depends_on == ("b",)
        assert repr(saga) == "ThreeStepSaga(steps=['a', 'b', 'c'])"
        assert saga.name == "three-step"

    def test_name_defaults_to_class_name(self):
        """Without saga_name the class name is used"""
        class Unnamed(Saga):
            pass

        assert Unnamed().name == "Unnamed"
        assert Unnamed().steps == []


class TestListeners:
    """Listeners observe the lifecycle and can never break it"""

    @pytest.mark.asyncio
    async def test_lifecycle_events(self):
        """Listeners see start, step, compensation and failure events in order"""
        events = []

        class Recorder(SagaListener):
            def on_saga_start(self, saga_name, saga_id, ctx):
                events.append(("start", saga_name))

            def on_step_success(self, saga_name, step_name, ctx, result):
                events.append(("ok", step_name))

            async def on_compensation_complete(self, saga_name, step_name, ctx):
                events.append(("undone", step_name))

            def on_saga_failed(self, saga_name, saga_id, ctx, error):
                events.append(("failed", str(error)))

        saga = ThreeStepSaga(fail_at="b", config=quiet_config(logging=Recorder()))
        with pytest.raises(OrderSagaError):
            await saga.run({})

        assert events == [
            ("start", "three-step"),
            ("ok", "a"),
            ("undone", "a"),
            ("failed", "b exploded"),
        ]

    @pytest.mark.asyncio
    async def test_listener_errors_are_ignored(self):
        """A broken listener does not fail the run"""
        class Exploding(SagaListener):
            def on_step_enter(self, saga_name, step_name, ctx):
                raise RuntimeError("listener bug")

        saga = ThreeStepSaga(config=quiet_config(logging=Exploding()))
        await saga.run({})
        assert saga.status is SagaStatus.COMPLETED


    def test_listener_override_replaces_quiet_default(self):
        """A listener passed to the quiet config is the only one installed"""
        listener = SagaListener()
        config = quiet_config(logging=listener, compensation_backoff=0.5)
        assert config.listeners == [listener]
        assert config.compensation_backoff == 0.5
        assert quiet_config().listeners == []

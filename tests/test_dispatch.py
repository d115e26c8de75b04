"""Tests for the target registry and dispatcher."""

import pytest
from pydantic import BaseModel

from bellhop.scheduling.dispatch import Dispatcher, TargetRegistry
from bellhop.scheduling.errors import (
    CapabilityNotFound,
    ExecutionError,
    InvalidParameters,
    TargetNotFound,
)
from bellhop.scheduling.types import Target


class ReminderPayload(BaseModel):
    task_id: int
    message: str = "Reminder"


class Reminders:
    def __init__(self):
        self.sent: list[ReminderPayload] = []

    async def send(self, payload: ReminderPayload) -> str:
        self.sent.append(payload)
        return f"sent {payload.task_id}"

    def _private(self) -> None:
        pass


class TestTargetRegistry:
    def test_register_exposes_public_callables(self, collaborator):
        registry = TargetRegistry()
        registry.register("tasks", collaborator)

        assert "tasks" in registry
        assert len(registry) == 1
        assert registry.resolve("tasks") is collaborator
        assert {"ping", "boom", "remind", "slow"} <= set(
            registry.capabilities("tasks")
        )
        assert "_private" not in registry.capabilities("tasks")

    def test_register_explicit_capabilities(self, collaborator):
        registry = TargetRegistry()
        registry.register("tasks", collaborator, capabilities=["ping"])

        assert registry.capabilities("tasks") == ["ping"]
        assert registry.capability("tasks", "boom") is None

    def test_register_missing_capability(self, collaborator):
        registry = TargetRegistry()
        with pytest.raises(CapabilityNotFound):
            registry.register("tasks", collaborator, capabilities=["nope"])
        assert "tasks" not in registry

    def test_register_mapping(self):
        registry = TargetRegistry()
        registry.register("digest", {"post": lambda: "posted", "limit": 5})

        assert registry.capabilities("digest") == ["post"]

    def test_register_duplicate_name(self, collaborator):
        registry = TargetRegistry()
        registry.register("tasks", collaborator)
        with pytest.raises(ValueError):
            registry.register("tasks", collaborator)

    def test_schema_for_unknown_capability(self):
        registry = TargetRegistry()
        with pytest.raises(CapabilityNotFound):
            registry.register(
                "reminders",
                Reminders(),
                capabilities=["send"],
                schemas={"other": ReminderPayload},
            )

    def test_unregister(self, collaborator):
        registry = TargetRegistry()
        registry.register("tasks", collaborator)
        registry.unregister("tasks")

        assert registry.resolve("tasks") is None
        assert registry.names == []


class TestDispatcher:
    async def test_invoke_without_parameters(self, dispatcher, collaborator):
        result = await dispatcher.invoke(Target("tasks", "ping"))

        assert result == "pong"
        assert collaborator.calls == [("ping", ())]

    async def test_list_parameters_are_spread(self, dispatcher, collaborator):
        await dispatcher.invoke(Target("tasks", "ping"), [42, "Deadline soon"])

        assert collaborator.calls == [("ping", (42, "Deadline soon"))]

    async def test_dict_parameters_are_one_argument(self, dispatcher, collaborator):
        result = await dispatcher.invoke(Target("tasks", "remind"), {"task": 7})

        assert result == {"sent": True}
        assert collaborator.calls == [("remind", ({"task": 7},))]

    async def test_scalar_parameter(self, dispatcher, collaborator):
        await dispatcher.invoke(Target("tasks", "ping"), "hello")

        assert collaborator.calls == [("ping", ("hello",))]

    async def test_unknown_collaborator(self, dispatcher):
        with pytest.raises(TargetNotFound):
            await dispatcher.invoke(Target("missing", "ping"))

    async def test_unknown_capability(self, dispatcher):
        with pytest.raises(CapabilityNotFound):
            await dispatcher.invoke(Target("tasks", "missing"))

    async def test_handler_error_is_wrapped(self, dispatcher):
        with pytest.raises(ExecutionError, match="boom") as exc_info:
            await dispatcher.invoke(Target("tasks", "boom"))

        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_check(self, dispatcher):
        dispatcher.check(Target("tasks", "ping"), [1, 2])

        with pytest.raises(TargetNotFound):
            dispatcher.check(Target("nobody", "ping"))


class TestSchemas:
    @pytest.fixture
    def reminders(self) -> Reminders:
        return Reminders()

    @pytest.fixture
    def schema_dispatcher(self, reminders) -> Dispatcher:
        registry = TargetRegistry()
        registry.register(
            "reminders",
            reminders,
            capabilities=["send"],
            schemas={"send": ReminderPayload},
        )
        return Dispatcher(registry)

    async def test_parameters_validated_into_model(
        self, schema_dispatcher, reminders
    ):
        result = await schema_dispatcher.invoke(
            Target("reminders", "send"), {"task_id": 3}
        )

        assert result == "sent 3"
        assert reminders.sent == [ReminderPayload(task_id=3, message="Reminder")]

    def test_invalid_parameters(self, schema_dispatcher):
        with pytest.raises(InvalidParameters):
            schema_dispatcher.check(Target("reminders", "send"), {"task_id": "x"})

    def test_missing_parameters(self, schema_dispatcher):
        with pytest.raises(InvalidParameters):
            schema_dispatcher.check(Target("reminders", "send"), None)

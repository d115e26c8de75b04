"""Target registry and dispatcher.

Collaborators (bot modules) register themselves under a name together with
the capabilities the scheduler may call. Capabilities are resolved and
checked when the collaborator registers, and targets are checked again when
a job is created, so a typo surfaces at creation instead of at fire time.
"""

import inspect
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from bellhop.scheduling.errors import (
    CapabilityNotFound,
    ExecutionError,
    InvalidParameters,
    TargetNotFound,
)
from bellhop.scheduling.types import Target

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Capability:
    """One invocable function exposed by a collaborator."""

    name: str
    func: Callable[..., Any]
    # Optional typed payload; parameters are validated into this model
    schema: type[BaseModel] | None = None


def _public_callables(collaborator: object) -> list[str]:
    if isinstance(collaborator, Mapping):
        return [name for name, func in collaborator.items() if callable(func)]
    return [
        name
        for name in dir(collaborator)
        if not name.startswith("_") and callable(getattr(collaborator, name, None))
    ]


def _lookup(collaborator: object, name: str) -> Callable[..., Any] | None:
    if isinstance(collaborator, Mapping):
        func = collaborator.get(name)
    else:
        func = getattr(collaborator, name, None)
    return func if callable(func) else None


class TargetRegistry:
    """Registry of collaborators the scheduler can dispatch to.

    Example:
        registry = TargetRegistry()
        registry.register("tasks", task_manager, capabilities=["send_reminder"])
        registry.register("digest", {"post": post_digest})
    """

    def __init__(self) -> None:
        self._collaborators: dict[str, object] = {}
        self._capabilities: dict[str, dict[str, Capability]] = {}

    def register(
        self,
        name: str,
        collaborator: object,
        capabilities: Iterable[str] | None = None,
        schemas: Mapping[str, type[BaseModel]] | None = None,
    ) -> None:
        """Register a collaborator.

        Args:
            name: Collaborator name used in job targets.
            collaborator: Object (or mapping of name -> callable) exposing
                capabilities.
            capabilities: Names to expose. Defaults to every public callable.
            schemas: Optional pydantic model per capability for its parameters.

        Raises:
            ValueError: If a collaborator with the same name is registered.
            CapabilityNotFound: If a listed capability is missing or not callable.
        """
        if name in self._collaborators:
            raise ValueError(f"Collaborator '{name}' already registered")

        schemas = schemas or {}
        names = (
            list(capabilities)
            if capabilities is not None
            else _public_callables(collaborator)
        )
        exposed: dict[str, Capability] = {}
        for capability in names:
            func = _lookup(collaborator, capability)
            if func is None:
                raise CapabilityNotFound(name, capability)
            exposed[capability] = Capability(capability, func, schemas.get(capability))

        unknown = set(schemas) - set(exposed)
        if unknown:
            raise CapabilityNotFound(name, sorted(unknown)[0])

        self._collaborators[name] = collaborator
        self._capabilities[name] = exposed
        logger.debug(
            f"Registered collaborator: {name} ({', '.join(sorted(exposed)) or '-'})"
        )

    def unregister(self, name: str) -> None:
        self._collaborators.pop(name, None)
        self._capabilities.pop(name, None)

    def resolve(self, name: str) -> object | None:
        """Get a registered collaborator, or None."""
        return self._collaborators.get(name)

    def capability(self, collaborator: str, capability: str) -> Capability | None:
        return self._capabilities.get(collaborator, {}).get(capability)

    def capabilities(self, collaborator: str) -> list[str]:
        return sorted(self._capabilities.get(collaborator, {}))

    @property
    def names(self) -> list[str]:
        return list(self._collaborators)

    def __contains__(self, name: str) -> bool:
        return name in self._collaborators

    def __len__(self) -> int:
        return len(self._collaborators)


class Dispatcher:
    """Resolves job targets and invokes them with their parameters."""

    def __init__(self, registry: TargetRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> TargetRegistry:
        return self._registry

    def resolve(self, target: Target) -> Capability:
        """Resolve a target to its capability.

        Raises:
            TargetNotFound: If the collaborator is not registered.
            CapabilityNotFound: If it does not expose the capability.
        """
        if target.collaborator not in self._registry:
            raise TargetNotFound(target.collaborator)
        capability = self._registry.capability(target.collaborator, target.capability)
        if capability is None:
            raise CapabilityNotFound(target.collaborator, target.capability)
        return capability

    def check(self, target: Target, parameters: Any = None) -> None:
        """Validate a target and its parameters without invoking it."""
        capability = self.resolve(target)
        self._arguments(capability, target, parameters)

    def _arguments(
        self, capability: Capability, target: Target, parameters: Any
    ) -> tuple[Any, ...]:
        if capability.schema is not None:
            try:
                return (capability.schema.model_validate(parameters or {}),)
            except PydanticValidationError as e:
                raise InvalidParameters(
                    f"Invalid parameters for {target}: {e.error_count()} error(s)"
                ) from e
        if parameters is None:
            return ()
        if isinstance(parameters, list):
            return tuple(parameters)
        return (parameters,)

    async def invoke(self, target: Target, parameters: Any = None) -> Any:
        """Invoke a target and return its result.

        Lists are spread as positional arguments; any other payload is
        passed as a single argument; None means no arguments.

        Raises:
            TargetNotFound: If the collaborator is not registered.
            CapabilityNotFound: If the capability does not exist.
            InvalidParameters: If parameters do not match the schema.
            ExecutionError: If the handler raised.
        """
        capability = self.resolve(target)
        args = self._arguments(capability, target, parameters)
        try:
            result = capability.func(*args)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            raise ExecutionError(str(e) or type(e).__name__) from e
        return result

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Protocol, TypeVar

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)


class InvocationKind(Enum):
    """Classify what a proxy forwards to its delegate."""

    GET_ATTRIBUTE = "get_attribute"
    SET_ATTRIBUTE = "set_attribute"
    DELETE_ATTRIBUTE = "delete_attribute"
    CALL_SPECIAL = "call_special"
    """Call a special method such as ``__len__``, looked up on the target's type."""


@dataclass(frozen=True, slots=True)
class Invocation:
    """Describe one operation performed on a proxy.

    Ordinary method calls arrive as a ``GET_ATTRIBUTE`` of the method name
    followed by a call of the returned bound method, so the method always runs
    on the instance that was current when it was looked up.
    """

    kind: InvocationKind
    name: str
    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = field(default_factory=dict)

    def apply(self, target: Any) -> Any:
        """Perform this operation on a real instance and return its result."""
        if self.kind is InvocationKind.GET_ATTRIBUTE:
            return getattr(target, self.name)
        if self.kind is InvocationKind.SET_ATTRIBUTE:
            setattr(target, self.name, *self.args)
            return None
        if self.kind is InvocationKind.DELETE_ATTRIBUTE:
            delattr(target, self.name)
            return None
        return getattr(type(target), self.name)(target, *self.args, **self.kwargs)


class DispatchDelegate(Protocol):
    """Receive every operation performed on an attached proxy."""

    def __call__(self, invocation: Invocation) -> Any: ...


class Provider(Protocol[T_co]):
    """Produce a value on demand, possibly respecting a scope."""

    def get(self) -> T_co: ...


class ProviderDispatch(Generic[T]):
    """Forward each invocation to a freshly provided instance.

    ``provider.get()`` is called once per invocation and the result is never
    kept, so two method calls through the same proxy may reach two different
    instances when the provider is scoped or transient.
    """

    __slots__ = ("_provider",)

    def __init__(self, provider: Provider[T]) -> None:
        self._provider = provider

    def __call__(self, invocation: Invocation) -> Any:
        return invocation.apply(self._provider.get())

    def __repr__(self) -> str:
        return f"ProviderDispatch({self._provider!r})"

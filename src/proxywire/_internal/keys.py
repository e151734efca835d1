from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Annotated, Any, NamedTuple, get_args, get_origin

from proxywire.exceptions import ProxyWireInvalidRegistrationError

_ANNOTATED_MARKER_MIN_ARGS = 2


class Component(NamedTuple):
    """Differentiate multiple bindings for the same base type.

    Attach ``Component`` metadata to ``typing.Annotated`` so the container
    treats each annotated key as distinct.

    Examples:
        .. code-block:: python

            ReplicaDb: TypeAlias = Annotated[Database, Component("replica")]
            PrimaryDb: TypeAlias = Annotated[Database, Component("primary")]

    """

    value: Any


@dataclass(frozen=True, slots=True)
class _HiddenQualifier:
    """Qualifier of keys that only the scoped proxy binder can produce."""

    token: str
    shadows: BindingKey


@dataclass(frozen=True, slots=True)
class BindingKey:
    """Identify a requested dependency by type and optional qualifier.

    Keys are normally written as a class or as
    ``Annotated[T, Component(...)]``; ``from_dependency`` normalizes both forms
    (and already built keys) into one hashable value.
    """

    dependency_type: Any
    qualifier: Component | _HiddenQualifier | None = None

    @classmethod
    def from_dependency(cls, dependency: Any, *, component: object | None = None) -> BindingKey:
        """Normalize a dependency annotation into a key.

        Args:
            dependency: A class, an ``Annotated[T, Component(...)]`` token, or a key.
            component: Optional component value applied on top of ``dependency``.

        """
        if isinstance(dependency, BindingKey):
            key = dependency
        elif get_origin(dependency) is Annotated:
            key = cls._from_annotated(dependency)
        else:
            key = cls(dependency_type=dependency)

        if component is None:
            return key
        if key.qualifier is not None:
            msg = f"Dependency {dependency!r} already carries a qualifier; got component={component!r}."
            raise ProxyWireInvalidRegistrationError(msg)
        qualifier = component if isinstance(component, Component) else Component(component)
        return cls(dependency_type=key.dependency_type, qualifier=qualifier)

    @classmethod
    def _from_annotated(cls, annotation: Any) -> BindingKey:
        annotation_args = get_args(annotation)
        if len(annotation_args) < _ANNOTATED_MARKER_MIN_ARGS:
            return cls(dependency_type=annotation)
        components = [item for item in annotation_args[1:] if isinstance(item, Component)]
        if not components:
            return cls(dependency_type=annotation_args[0])
        return cls(dependency_type=annotation_args[0], qualifier=components[0])

    @property
    def is_hidden(self) -> bool:
        return isinstance(self.qualifier, _HiddenQualifier)

    def hidden(self) -> BindingKey:
        """Create a fresh key for the same type that no public key can equal.

        Every call returns a new key carrying a random token, so two binders
        rewriting the same public key never share their hidden binding.
        """
        return BindingKey(
            dependency_type=self.dependency_type,
            qualifier=_HiddenQualifier(token=uuid.uuid4().hex, shadows=self),
        )

    def __repr__(self) -> str:
        name = getattr(self.dependency_type, "__qualname__", repr(self.dependency_type))
        if self.qualifier is None:
            return f"BindingKey({name})"
        if isinstance(self.qualifier, _HiddenQualifier):
            return f"BindingKey({name}, hidden={self.qualifier.token[:8]})"
        return f"BindingKey({name}, {self.qualifier!r})"

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Protocol, TypeAlias, TypeVar, get_type_hints, runtime_checkable

from proxywire._internal.errors import ErrorReport
from proxywire._internal.keys import BindingKey
from proxywire._internal.scope import BaseScope
from proxywire.exceptions import ProxyWireInvalidRegistrationError

T_co = TypeVar("T_co", covariant=True)

FactoryProvider: TypeAlias = Callable[..., Any]
"""A factory function or class called with resolved dependencies."""

_IMPLICIT_FIRST_PARAMETER_NAMES = {"self", "cls"}


class Lifetime(Enum):
    """Define cache behavior for provider results."""

    TRANSIENT = auto()
    """Disable caching and build a new value for every resolution call."""

    SCOPED = auto()
    """Cache per entered scope at the declared scope level.

    Declared on the container root scope this behaves like ``SINGLETON``.
    """

    SINGLETON = auto()
    """Cache one value in the root resolver for the container lifetime."""


@runtime_checkable
class InitializableProvider(Protocol):
    """Provider that needs the finished container before it can produce values.

    ``Container.compile`` calls ``initialize`` once per provider object after
    all registrations are in place.
    """

    def get(self) -> Any: ...

    def initialize(self, container: Any, errors: ErrorReport) -> None: ...


class ProviderObject(Protocol[T_co]):
    """Object with a ``get()`` method producing values for a binding."""

    def get(self) -> T_co: ...


class ProviderKind(Enum):
    """Tell which single source a ``ProviderSpec`` produces values from."""

    INSTANCE = auto()
    CONCRETE = auto()
    FACTORY = auto()
    PROVIDER = auto()
    ALIAS = auto()


@dataclass(frozen=True, slots=True)
class ProviderDependency:
    """Bind one provider parameter to the key resolved for it."""

    key: BindingKey
    parameter: inspect.Parameter

    @property
    def has_default(self) -> bool:
        return self.parameter.default is not inspect.Parameter.empty


@dataclass(kw_only=True)
class ProviderSpec:
    """Describe how a single binding key is produced and cached.

    Exactly one provider source is set: an instance, a concrete type, a
    factory, a provider object, or the key of another binding (``alias_of``).
    """

    key: BindingKey
    """The key this spec provides."""

    instance: Any = None
    concrete_type: type[Any] | None = None
    factory: FactoryProvider | None = None
    provider: ProviderObject[Any] | None = None
    alias_of: BindingKey | None = None

    lifetime: Lifetime
    scope: BaseScope
    eager: bool = False
    """Instantiate during ``Container.compile`` instead of on first use."""

    autoregistered: bool = False

    _dependencies: list[ProviderDependency] | None = field(default=None, repr=False)

    @property
    def kind(self) -> ProviderKind:
        if self.concrete_type is not None:
            return ProviderKind.CONCRETE
        if self.factory is not None:
            return ProviderKind.FACTORY
        if self.provider is not None:
            return ProviderKind.PROVIDER
        if self.alias_of is not None:
            return ProviderKind.ALIAS
        return ProviderKind.INSTANCE

    @property
    def implementation_type(self) -> Any:
        """Return the most specific type known to be produced by this spec."""
        if self.concrete_type is not None:
            return self.concrete_type
        if self.kind is ProviderKind.INSTANCE:
            return type(self.instance)
        return self.key.dependency_type

    def dependencies(self) -> list[ProviderDependency]:
        """Return the dependencies of this spec, extracting them on first use.

        Raises:
            ProxyWireInvalidRegistrationError: If a required parameter has no
                usable annotation.

        """
        if self._dependencies is None:
            self._dependencies = ProviderDependenciesExtractor().extract(self)
        return self._dependencies

    def dependency_keys(self) -> list[BindingKey]:
        """Return every key this spec needs at resolution or wiring time."""
        if self.kind is ProviderKind.ALIAS:
            return [self.alias_of] if self.alias_of is not None else []
        if self.kind is ProviderKind.PROVIDER:
            declared: Iterable[BindingKey] = getattr(self.provider, "dependencies", ())
            return list(declared)
        return [dependency.key for dependency in self.dependencies()]


class ProvidersRegistrations:
    """Store provider specs indexed by binding key.

    Registration keys are unique: adding a spec for an existing key replaces
    the previous spec.
    """

    def __init__(self) -> None:
        self._registrations_by_key: dict[BindingKey, ProviderSpec] = {}

    def add(self, spec: ProviderSpec) -> None:
        """Add or replace the provider specification for ``spec.key``."""
        self._registrations_by_key[spec.key] = spec

    def find(self, key: BindingKey) -> ProviderSpec | None:
        return self._registrations_by_key.get(key)

    def values(self) -> list[ProviderSpec]:
        """Get all provider specifications in registration order."""
        return list(self._registrations_by_key.values())

    def __contains__(self, key: object) -> bool:
        return key in self._registrations_by_key

    def __len__(self) -> int:
        return len(self._registrations_by_key)


class ProviderDependenciesExtractor:
    """Extract dependencies from constructor and factory annotations."""

    def extract(self, spec: ProviderSpec) -> list[ProviderDependency]:
        if spec.concrete_type is not None:
            return self._extract_dependencies(
                provider=spec.concrete_type.__init__,
                provider_name=spec.concrete_type.__qualname__,
                skip_first_parameter=True,
            )
        if spec.factory is not None:
            if inspect.isclass(spec.factory):
                return self._extract_dependencies(
                    provider=spec.factory.__init__,
                    provider_name=spec.factory.__qualname__,
                    skip_first_parameter=True,
                )
            return self._extract_dependencies(
                provider=spec.factory,
                provider_name=getattr(spec.factory, "__qualname__", repr(spec.factory)),
                skip_first_parameter=False,
            )
        return []

    def _extract_dependencies(
        self,
        *,
        provider: Callable[..., Any],
        provider_name: str,
        skip_first_parameter: bool,
    ) -> list[ProviderDependency]:
        try:
            parameters = list(inspect.signature(provider).parameters.values())
        except (TypeError, ValueError):
            return []
        if (
            skip_first_parameter
            and parameters
            and parameters[0].name in _IMPLICIT_FIRST_PARAMETER_NAMES
        ):
            parameters = parameters[1:]
        parameters = [
            parameter
            for parameter in parameters
            if parameter.kind
            not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
        ]
        if not parameters:
            return []

        try:
            annotations = get_type_hints(provider, include_extras=True)
        except (NameError, TypeError) as error:
            msg = f"Cannot resolve annotations of provider '{provider_name}': {error}"
            raise ProxyWireInvalidRegistrationError(msg) from error

        dependencies: list[ProviderDependency] = []
        for parameter in parameters:
            annotation = annotations.get(parameter.name)
            if annotation is None:
                if parameter.default is inspect.Parameter.empty:
                    msg = (
                        f"Parameter '{parameter.name}' of provider '{provider_name}' "
                        "has no annotation and no default value."
                    )
                    raise ProxyWireInvalidRegistrationError(msg)
                continue
            dependencies.append(
                ProviderDependency(
                    key=BindingKey.from_dependency(annotation),
                    parameter=parameter,
                ),
            )
        return dependencies

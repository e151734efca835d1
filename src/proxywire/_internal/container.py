from __future__ import annotations

import inspect
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from types import TracebackType
from typing import Any, Generic, Literal, TypeVar, get_type_hints

from typing_extensions import Self

from proxywire._internal.autoregistration import ConcreteTypeAutoregistrationPolicy
from proxywire._internal.errors import ErrorReport
from proxywire._internal.keys import BindingKey
from proxywire._internal.providers import (
    FactoryProvider,
    InitializableProvider,
    Lifetime,
    ProviderKind,
    ProviderObject,
    ProvidersRegistrations,
    ProviderSpec,
)
from proxywire._internal.scope import BaseScope, Scope
from proxywire.exceptions import (
    ProxyWireCircularDependencyError,
    ProxyWireConstructorInvocationError,
    ProxyWireDependencyNotRegisteredError,
    ProxyWireError,
    ProxyWireInvalidRegistrationError,
    ProxyWireScopeMismatchError,
)

T = TypeVar("T")

logger = logging.getLogger(__name__)

_MISSING = object()

_resolution_stack: ContextVar[tuple[BindingKey, ...]] = ContextVar(
    "proxywire_resolution_stack",
    default=(),
)


@contextmanager
def _resolving(key: BindingKey) -> Iterator[None]:
    stack = _resolution_stack.get()
    if key in stack:
        path = " -> ".join(repr(item) for item in (*stack[stack.index(key) :], key))
        msg = f"Circular dependency detected: {path}"
        raise ProxyWireCircularDependencyError(msg)
    token = _resolution_stack.set((*stack, key))
    try:
        yield
    finally:
        _resolution_stack.reset(token)


class ContainerProvider(Generic[T]):
    """Resolve one key from the container each time ``get()`` is called.

    Resolution runs against the resolver active in the calling thread or task,
    so a provider obtained once at startup follows every scope entered later.
    """

    __slots__ = ("_container", "key")

    def __init__(self, container: Container, key: BindingKey) -> None:
        self._container = container
        self.key = key

    def get(self) -> T:
        return self._container.resolve(self.key)

    def __repr__(self) -> str:
        return f"ContainerProvider({self.key!r})"


class Resolver:
    """Resolve bindings for one entered scope and own its cached values.

    The root resolver belongs to the container. Child resolvers are created by
    ``enter_scope`` and are context managers: entering one makes it the active
    resolver for the current context, leaving it drops its cached values.
    """

    def __init__(
        self,
        *,
        container: Container,
        scope: BaseScope,
        parent: Resolver | None = None,
    ) -> None:
        self._container = container
        self.scope = scope
        self.parent = parent
        self._cache: dict[BindingKey, Any] = {}
        self._lock = threading.RLock()
        self._tokens: list[Token[Resolver | None]] = []
        self._closed = False

    @property
    def root(self) -> Resolver:
        resolver = self
        while resolver.parent is not None:
            resolver = resolver.parent
        return resolver

    def resolve(self, dependency: Any) -> Any:
        """Resolve ``dependency`` in this resolver's scope.

        Raises:
            ProxyWireDependencyNotRegisteredError: If no binding can be found.
            ProxyWireScopeMismatchError: If the binding needs a deeper scope or
                this resolver is closed.
            ProxyWireCircularDependencyError: If resolution loops back on itself.

        """
        self._container._ensure_compiled()  # noqa: SLF001
        return self._resolve_key(BindingKey.from_dependency(dependency))

    def enter_scope(self, scope: BaseScope | None = None) -> Resolver:
        """Create a child resolver for a deeper scope.

        Args:
            scope: Target scope. Defaults to the next non-skippable scope.

        Raises:
            ProxyWireScopeMismatchError: If the target is not deeper than the
                current scope.

        """
        target = scope if scope is not None else Scope.next_after(self.scope)
        if target is None or target.level <= self.scope.level:
            msg = f"Cannot enter scope {target!r} from {self.scope!r}."
            raise ProxyWireScopeMismatchError(msg)
        return Resolver(container=self._container, scope=target, parent=self)

    def close(self) -> None:
        """Drop cached values; further resolution through this resolver fails."""
        with self._lock:
            self._cache.clear()
            self._closed = True
        logger.debug("Closed resolver for %r", self.scope)

    def __enter__(self) -> Self:
        self._tokens.append(self._container._active_resolver.set(self))  # noqa: SLF001
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        try:
            self.close()
        finally:
            self._container._active_resolver.reset(self._tokens.pop())  # noqa: SLF001

    def _resolve_key(self, key: BindingKey) -> Any:
        if self._closed:
            msg = f"Cannot resolve '{key!r}': resolver for {self.scope!r} is closed."
            raise ProxyWireScopeMismatchError(msg)

        spec = self._container._find_spec(key)  # noqa: SLF001
        if spec.kind is ProviderKind.INSTANCE:
            return spec.instance

        owner = self._cache_owner(spec)
        if owner is None:
            return self._build(spec)

        cached = owner._cache.get(key, _MISSING)
        if cached is not _MISSING:
            return cached
        with owner._lock:
            cached = owner._cache.get(key, _MISSING)
            if cached is _MISSING:
                cached = owner._build(spec)
                owner._cache[key] = cached
        return cached

    def _cache_owner(self, spec: ProviderSpec) -> Resolver | None:
        if spec.lifetime is Lifetime.TRANSIENT:
            return None
        if spec.lifetime is Lifetime.SINGLETON:
            return self.root
        if spec.scope.level > self.scope.level:
            msg = (
                f"'{spec.key!r}' is scoped to {spec.scope!r} but the active scope "
                f"is {self.scope!r}."
            )
            raise ProxyWireScopeMismatchError(msg)
        owner = self
        while owner.parent is not None and owner.scope.level > spec.scope.level:
            owner = owner.parent
        return owner

    def _build(self, spec: ProviderSpec) -> Any:
        with _resolving(spec.key):
            kind = spec.kind
            if kind is ProviderKind.ALIAS:
                return self._resolve_key(spec.alias_of)  # type: ignore[arg-type]
            if kind is ProviderKind.PROVIDER:
                return spec.provider.get()  # type: ignore[union-attr]
            target = spec.concrete_type if kind is ProviderKind.CONCRETE else spec.factory
            return self._call_with_dependencies(target, spec)  # type: ignore[arg-type]

    def _call_with_dependencies(self, target: FactoryProvider, spec: ProviderSpec) -> Any:
        args: list[Any] = []
        kwargs: dict[str, Any] = {}
        for dependency in spec.dependencies():
            if dependency.has_default and not self._container._can_resolve(dependency.key):  # noqa: SLF001
                continue
            value = self._resolve_key(dependency.key)
            if dependency.parameter.kind is inspect.Parameter.POSITIONAL_ONLY:
                args.append(value)
            else:
                kwargs[dependency.parameter.name] = value
        return target(*args, **kwargs)

    def __repr__(self) -> str:
        return f"Resolver({self.scope!r})"


class Container:
    """Register bindings and resolve them across nested scopes.

    Registration methods follow a keyword style: ``provides`` names the key
    (inferred where possible), ``component`` qualifies it, ``scope`` and
    ``lifetime`` control caching. Re-registering a key replaces its binding.

    ``compile`` finalizes the container: it lets initializable providers (such
    as scoped proxy providers) wire themselves, validates the dependency graph
    and creates eager singletons. Every problem found is reported at once
    through ``ProxyWireConfigurationError``. ``resolve`` compiles on demand.

    Examples:
        .. code-block:: python

            container = Container()
            container.add_concrete(Session, lifetime=Lifetime.SCOPED, scope=Scope.REQUEST)
            container.compile()

            with container.enter_scope(Scope.REQUEST):
                session = container.resolve(Session)

    """

    def __init__(
        self,
        root_scope: BaseScope = Scope.APP,
        default_lifetime: Lifetime = Lifetime.TRANSIENT,
        *,
        autoregister_concrete_types: bool = True,
    ) -> None:
        """Initialize an empty container.

        Args:
            root_scope: Scope of the root resolver.
            default_lifetime: Lifetime used when a registration omits one.
            autoregister_concrete_types: Bind unregistered concrete classes to
                themselves on first use.

        """
        self._root_scope = root_scope
        self._default_lifetime = default_lifetime
        self._autoregister_concrete_types = autoregister_concrete_types
        self._autoregistration_policy = ConcreteTypeAutoregistrationPolicy()
        self._providers_registrations = ProvidersRegistrations()
        self._initialized_providers: list[InitializableProvider] = []
        self._lock = threading.RLock()
        self._compiled = False
        self._compiling = False
        self._active_resolver: ContextVar[Resolver | None] = ContextVar(
            f"proxywire_active_resolver_{id(self)}",
            default=None,
        )
        self._root_resolver = Resolver(container=self, scope=root_scope)
        self._register(
            ProviderSpec(
                key=BindingKey(Container),
                instance=self,
                lifetime=Lifetime.SINGLETON,
                scope=root_scope,
            ),
        )

    @property
    def root_scope(self) -> BaseScope:
        return self._root_scope

    def add_instance(
        self,
        instance: Any,
        *,
        provides: Any = "infer",
        component: object | None = None,
    ) -> None:
        """Register a ready-made value.

        Args:
            instance: Value returned for every resolution of the key.
            provides: Key to register. Defaults to ``type(instance)``.
            component: Optional qualifier applied to ``provides``.

        """
        dependency = type(instance) if provides == "infer" else provides
        self._register(
            ProviderSpec(
                key=self._registration_key(dependency, component=component),
                instance=instance,
                lifetime=Lifetime.SINGLETON,
                scope=self._root_scope,
            ),
        )

    def add_concrete(
        self,
        concrete_type: type[Any],
        *,
        provides: Any = "infer",
        component: object | None = None,
        scope: BaseScope | Literal["from_container"] = "from_container",
        lifetime: Lifetime | Literal["from_container"] = "from_container",
        eager: bool = False,
    ) -> None:
        """Register a class built from its annotated ``__init__`` parameters.

        Args:
            concrete_type: Class to instantiate.
            provides: Key to register. Defaults to ``concrete_type``.
            component: Optional qualifier applied to ``provides``.
            scope: Scope the value is cached in for ``Lifetime.SCOPED``.
            lifetime: Cache policy. Defaults to the container default.
            eager: Create the value during ``compile``. Implies a singleton.

        Raises:
            ProxyWireInvalidRegistrationError: If ``concrete_type`` is not a
                concrete class or ``eager`` conflicts with ``lifetime``.

        """
        if not inspect.isclass(concrete_type) or inspect.isabstract(concrete_type):
            msg = f"add_concrete() requires a concrete class, got {concrete_type!r}."
            raise ProxyWireInvalidRegistrationError(msg)
        dependency = concrete_type if provides == "infer" else provides
        self._register(
            ProviderSpec(
                key=self._registration_key(dependency, component=component),
                concrete_type=concrete_type,
                lifetime=self._registration_lifetime(lifetime, eager=eager),
                scope=self._registration_scope(scope),
                eager=eager,
            ),
        )

    def add_factory(
        self,
        factory: FactoryProvider,
        *,
        provides: Any = "infer",
        component: object | None = None,
        scope: BaseScope | Literal["from_container"] = "from_container",
        lifetime: Lifetime | Literal["from_container"] = "from_container",
        eager: bool = False,
    ) -> None:
        """Register a callable whose annotated parameters are resolved and passed in.

        Args:
            factory: Function or class producing the value.
            provides: Key to register. Defaults to the factory's return
                annotation.
            component: Optional qualifier applied to ``provides``.
            scope: Scope the value is cached in for ``Lifetime.SCOPED``.
            lifetime: Cache policy. Defaults to the container default.
            eager: Create the value during ``compile``. Implies a singleton.

        Raises:
            ProxyWireInvalidRegistrationError: If ``provides`` cannot be
                inferred or ``eager`` conflicts with ``lifetime``.

        """
        if not callable(factory):
            msg = f"add_factory() requires a callable, got {factory!r}."
            raise ProxyWireInvalidRegistrationError(msg)
        dependency = self._infer_factory_key(factory) if provides == "infer" else provides
        self._register(
            ProviderSpec(
                key=self._registration_key(dependency, component=component),
                factory=factory,
                lifetime=self._registration_lifetime(lifetime, eager=eager),
                scope=self._registration_scope(scope),
                eager=eager,
            ),
        )

    def add_provider(
        self,
        provider: ProviderObject[Any],
        *,
        provides: Any,
        component: object | None = None,
        scope: BaseScope | Literal["from_container"] = "from_container",
        lifetime: Lifetime | Literal["from_container"] = "from_container",
    ) -> None:
        """Register an object whose ``get()`` produces the value.

        Providers that also implement ``initialize(container, errors)`` are
        initialized once by ``compile``. A provider may expose a
        ``dependencies`` attribute listing the keys it needs; ``compile``
        validates them.
        """
        if not callable(getattr(provider, "get", None)):
            msg = f"add_provider() requires an object with a get() method, got {provider!r}."
            raise ProxyWireInvalidRegistrationError(msg)
        self._register(
            ProviderSpec(
                key=self._registration_key(provides, component=component),
                provider=provider,
                lifetime=self._registration_lifetime(lifetime, eager=False),
                scope=self._registration_scope(scope),
            ),
        )

    def add_alias(
        self,
        target: Any,
        *,
        provides: Any,
        component: object | None = None,
        scope: BaseScope | Literal["from_container"] = "from_container",
        lifetime: Lifetime | Literal["from_container"] = "from_container",
    ) -> None:
        """Register ``provides`` as a link to the binding of ``target``."""
        self._register(
            ProviderSpec(
                key=self._registration_key(provides, component=component),
                alias_of=self._registration_key(target),
                lifetime=self._registration_lifetime(lifetime, eager=False),
                scope=self._registration_scope(scope),
            ),
        )

    def has_binding(self, dependency: Any) -> bool:
        """Return true if ``dependency`` has an explicit or automatic binding."""
        return BindingKey.from_dependency(dependency) in self._providers_registrations

    def get_binding(self, dependency: Any) -> ProviderSpec:
        """Return the registration for ``dependency``.

        Eligible concrete classes are auto-registered on first lookup.

        Raises:
            ProxyWireDependencyNotRegisteredError: If no binding exists.

        """
        return self._find_spec(BindingKey.from_dependency(dependency))

    def get_provider(self, dependency: Any) -> ContainerProvider[Any]:
        """Return a provider resolving ``dependency`` against the active scope.

        Raises:
            ProxyWireDependencyNotRegisteredError: If no binding exists.

        """
        spec = self.get_binding(dependency)
        return ContainerProvider(self, spec.key)

    def compile(self) -> Resolver:
        """Finalize registrations and return the root resolver.

        Raises:
            ProxyWireConfigurationError: With every error collected while
                initializing providers, validating dependencies and creating
                eager singletons.

        """
        with self._lock:
            if self._compiled:
                return self._root_resolver
            self._compiling = True
            try:
                errors = ErrorReport()
                self._initialize_providers(errors)
                self._validate_registrations(errors)
                if not errors.has_errors():
                    self._instantiate_eager_singletons(errors)
                errors.raise_if_errors()
                self._compiled = True
            finally:
                self._compiling = False

        logger.info(
            "Compiled container with %d registrations",
            len(self._providers_registrations),
        )
        return self._root_resolver

    def resolve(self, dependency: Any) -> Any:
        """Resolve ``dependency`` against the active resolver.

        The active resolver is the innermost scope entered in the current
        thread or task, or the root resolver.
        """
        self._ensure_compiled()
        return self._current_resolver().resolve(dependency)

    def enter_scope(self, scope: BaseScope | None = None) -> Resolver:
        """Open a deeper scope below the active resolver.

        Use the result as a context manager; while it is entered,
        ``container.resolve`` and container providers resolve through it.
        """
        self._ensure_compiled()
        return self._current_resolver().enter_scope(scope)

    def close(self) -> None:
        """Drop every cached root value."""
        self._root_resolver.close()
        self._root_resolver = Resolver(container=self, scope=self._root_scope)

    def _current_resolver(self) -> Resolver:
        active = self._active_resolver.get()
        return active if active is not None else self._root_resolver

    def _ensure_compiled(self) -> None:
        if self._compiled:
            return
        with self._lock:
            if not self._compiled and not self._compiling:
                self.compile()

    def _register(self, spec: ProviderSpec) -> None:
        """Add a spec without public key checks. Hidden keys go through here."""
        with self._lock:
            self._providers_registrations.add(spec)
            self._compiled = False
        logger.debug(
            "Registered %s for %r (lifetime=%s, scope=%r)",
            spec.kind.name.lower(),
            spec.key,
            spec.lifetime.name,
            spec.scope,
        )

    def _registration_key(self, dependency: Any, *, component: object | None = None) -> BindingKey:
        key = BindingKey.from_dependency(dependency, component=component)
        if key.is_hidden:
            msg = f"Key {key!r} is reserved for scoped proxy bindings."
            raise ProxyWireInvalidRegistrationError(msg)
        return key

    def _registration_scope(self, scope: BaseScope | Literal["from_container"]) -> BaseScope:
        if scope == "from_container":
            return self._root_scope
        if not isinstance(scope, BaseScope):
            msg = f"Scope must be a BaseScope, got {scope!r}."
            raise ProxyWireInvalidRegistrationError(msg)
        if scope.level < self._root_scope.level:
            msg = f"Scope {scope!r} is above the container root scope {self._root_scope!r}."
            raise ProxyWireInvalidRegistrationError(msg)
        return scope

    def _registration_lifetime(
        self,
        lifetime: Lifetime | Literal["from_container"],
        *,
        eager: bool,
    ) -> Lifetime:
        if lifetime == "from_container":
            return Lifetime.SINGLETON if eager else self._default_lifetime
        if eager and lifetime is not Lifetime.SINGLETON:
            msg = f"Eager registrations must be singletons, got lifetime={lifetime.name}."
            raise ProxyWireInvalidRegistrationError(msg)
        return lifetime

    def _infer_factory_key(self, factory: FactoryProvider) -> Any:
        if inspect.isclass(factory):
            return factory
        try:
            return_annotation = get_type_hints(factory, include_extras=True).get("return")
        except (NameError, TypeError) as error:
            msg = f"Cannot infer the key provided by factory {factory!r}: {error}"
            raise ProxyWireInvalidRegistrationError(msg) from error
        if return_annotation is None or return_annotation is type(None):
            msg = f"Factory {factory!r} has no return annotation; pass provides= explicitly."
            raise ProxyWireInvalidRegistrationError(msg)
        return return_annotation

    def _find_spec(self, key: BindingKey) -> ProviderSpec:
        spec = self._providers_registrations.find(key)
        if spec is not None:
            return spec
        if self._can_autoregister(key):
            with self._lock:
                spec = self._providers_registrations.find(key)
                if spec is None:
                    spec = ProviderSpec(
                        key=key,
                        concrete_type=key.dependency_type,
                        lifetime=Lifetime.TRANSIENT,
                        scope=self._root_scope,
                        autoregistered=True,
                    )
                    self._providers_registrations.add(spec)
                    logger.debug("Auto-registered %r", key)
            return spec
        msg = f"No binding registered for '{key!r}'."
        raise ProxyWireDependencyNotRegisteredError(msg)

    def _can_autoregister(self, key: BindingKey) -> bool:
        return self._autoregister_concrete_types and self._autoregistration_policy.is_eligible_key(
            key,
        )

    def _can_resolve(self, key: BindingKey) -> bool:
        return key in self._providers_registrations or self._can_autoregister(key)

    def _initialize_providers(self, errors: ErrorReport) -> None:
        for spec in self._providers_registrations.values():
            provider = spec.provider
            if not isinstance(provider, InitializableProvider):
                continue
            if any(provider is initialized for initialized in self._initialized_providers):
                continue
            provider_errors = ErrorReport()
            provider.initialize(self, provider_errors)
            errors.merge(provider_errors)
            if not provider_errors.has_errors():
                self._initialized_providers.append(provider)

    def _validate_registrations(self, errors: ErrorReport) -> None:
        for spec in self._providers_registrations.values():
            try:
                dependencies = self._declared_dependencies(spec)
            except ProxyWireInvalidRegistrationError as error:
                errors.add(error)
                continue

            cache_level = self._cache_level(spec)
            for dependency_key, has_default in dependencies:
                if not self._can_resolve(dependency_key):
                    if not has_default:
                        msg = f"'{dependency_key!r}' required by '{spec.key!r}' is not registered."
                        errors.add(ProxyWireDependencyNotRegisteredError(msg))
                    continue
                if cache_level is None or spec.kind is ProviderKind.PROVIDER:
                    continue
                required_level = self._required_scope_level(dependency_key, set())
                if required_level > cache_level:
                    msg = (
                        f"'{spec.key!r}' is cached at scope level {cache_level} but depends "
                        f"on '{dependency_key!r}', which needs scope level {required_level}. "
                        "Inject it through a scoped proxy instead."
                    )
                    errors.add(ProxyWireScopeMismatchError(msg))

    def _declared_dependencies(self, spec: ProviderSpec) -> list[tuple[BindingKey, bool]]:
        if spec.kind in (ProviderKind.CONCRETE, ProviderKind.FACTORY):
            return [(dependency.key, dependency.has_default) for dependency in spec.dependencies()]
        return [(key, False) for key in spec.dependency_keys()]

    def _cache_level(self, spec: ProviderSpec) -> int | None:
        if spec.kind is ProviderKind.INSTANCE or spec.lifetime is Lifetime.TRANSIENT:
            return None
        if spec.lifetime is Lifetime.SINGLETON:
            return self._root_scope.level
        return spec.scope.level

    def _required_scope_level(self, key: BindingKey, visiting: set[BindingKey]) -> int:
        """Return the shallowest scope level at which ``key`` can be resolved."""
        spec = self._providers_registrations.find(key)
        if spec is None or key in visiting:
            return self._root_scope.level
        visiting.add(key)
        if spec.kind is ProviderKind.INSTANCE or spec.lifetime is Lifetime.SINGLETON:
            return self._root_scope.level
        if spec.lifetime is Lifetime.SCOPED:
            return spec.scope.level
        if spec.kind is ProviderKind.PROVIDER:
            return self._root_scope.level
        try:
            dependency_keys = spec.dependency_keys()
        except ProxyWireInvalidRegistrationError:
            return self._root_scope.level
        try:
            return max(
                [self._root_scope.level]
                + [self._required_scope_level(dependency, visiting) for dependency in dependency_keys],
            )
        finally:
            visiting.discard(key)

    def _instantiate_eager_singletons(self, errors: ErrorReport) -> None:
        for spec in self._providers_registrations.values():
            if not spec.eager:
                continue
            try:
                self._root_resolver.resolve(spec.key)
            except ProxyWireError as error:
                errors.add(error)
            except Exception as error:  # noqa: BLE001
                failure = ProxyWireConstructorInvocationError(
                    f"Error creating eager singleton '{spec.key!r}': {error}",
                )
                failure.__cause__ = error
                errors.add(failure)

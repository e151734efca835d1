from __future__ import annotations

import inspect
import logging
import threading
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from typing_extensions import Self

from proxywire._internal.construction import ConstructionStrategy
from proxywire._internal.dispatch import ProviderDispatch
from proxywire._internal.errors import ErrorReport
from proxywire._internal.keys import BindingKey
from proxywire._internal.providers import FactoryProvider, Lifetime, ProviderObject, ProviderSpec
from proxywire._internal.proxy_factory import ProxyFactory
from proxywire._internal.scope import BaseScope
from proxywire.exceptions import (
    ProxyWireDependencyNotRegisteredError,
    ProxyWireIllegalSingletonScopeError,
    ProxyWireInvalidRegistrationError,
    ProxyWireUninitializedProxyError,
)

if TYPE_CHECKING:
    from proxywire._internal.container import Container

T = TypeVar("T")

logger = logging.getLogger(__name__)


class ProxyProviderState(Enum):
    """Lifecycle of a ``ScopedProxyProvider``; moves forward at most once."""

    UNINITIALIZED = auto()
    INITIALIZED = auto()


class ScopedProxyProvider(Generic[T]):
    """Serve one forwarding proxy for a public key.

    Registered under the public key as a singleton provider. The proxy is built
    when the container calls ``initialize``; each use of the proxy resolves the
    hidden key again, so consumers never hold a stale instance.
    """

    def __init__(
        self,
        *,
        key: BindingKey,
        hidden_key: BindingKey,
        construction_strategy: ConstructionStrategy,
        proxy_factory: ProxyFactory | None = None,
    ) -> None:
        self.key = key
        self.hidden_key = hidden_key
        self.construction_strategy = construction_strategy
        self._proxy_factory = proxy_factory if proxy_factory is not None else ProxyFactory()
        self._state = ProxyProviderState.UNINITIALIZED
        self._proxy: T | None = None
        self._lock = threading.Lock()

    @property
    def state(self) -> ProxyProviderState:
        return self._state

    @property
    def dependencies(self) -> tuple[BindingKey, ...]:
        """Keys needed by this provider: the container until wired, then the hidden key."""
        if self._state is ProxyProviderState.INITIALIZED:
            return (self.hidden_key,)
        from proxywire._internal.container import Container  # noqa: PLC0415

        return (BindingKey(Container),)

    def initialize(self, container: Container, errors: ErrorReport) -> None:
        """Build the proxy against ``container``'s binding for the hidden key.

        Failures are added to ``errors``; the provider then stays uninitialized.
        Calling ``initialize`` again after success does nothing.
        """
        with self._lock:
            if self._state is ProxyProviderState.INITIALIZED:
                logger.debug("Scoped proxy for %r is already initialized", self.key)
                return

            if not container.has_binding(self.hidden_key):
                msg = f"Scoped proxy for '{self.key!r}' has no target binding."
                errors.add(ProxyWireDependencyNotRegisteredError(msg))
                return

            provider = container.get_provider(self.hidden_key)
            proxy = self._proxy_factory.try_create(
                self.key.dependency_type,
                ProviderDispatch(provider),
                errors=errors,
                construction_strategy=self.construction_strategy,
            )
            if proxy is None:
                return

            self._proxy = proxy
            self._state = ProxyProviderState.INITIALIZED
        logger.debug(
            "Initialized scoped proxy for %r with %s",
            self.key,
            self.construction_strategy.name,
        )

    def get(self) -> T:
        """Return the proxy.

        Raises:
            ProxyWireUninitializedProxyError: If the container has not
                initialized this provider yet.

        """
        if self._state is not ProxyProviderState.INITIALIZED:
            msg = (
                f"Scoped proxy for '{self.key!r}' was requested before the container "
                "was compiled."
            )
            raise ProxyWireUninitializedProxyError(msg)
        return self._proxy  # type: ignore[return-value]

    def __repr__(self) -> str:
        return f"ScopedProxyProvider({self.key!r}, state={self._state.name})"


class ScopedProxyBindingBuilder(Generic[T]):
    """Configure the target behind a scoped proxy.

    Every call re-registers the hidden binding, so the last call of each kind
    wins. Calls that would make the target a singleton are rejected before
    anything is registered.
    """

    def __init__(
        self,
        *,
        container: Container,
        key: BindingKey,
        hidden_key: BindingKey,
    ) -> None:
        self._container = container
        self._key = key
        self._hidden_key = hidden_key
        self._source: dict[str, Any] = {}
        self._lifetime = Lifetime.TRANSIENT
        self._scope = container.root_scope
        if self._is_concrete(key.dependency_type):
            self._source = {"concrete_type": key.dependency_type}
            self._register()

    @property
    def key(self) -> BindingKey:
        return self._key

    @property
    def hidden_key(self) -> BindingKey:
        return self._hidden_key

    def to(self, implementation: type[Any]) -> Self:
        """Resolve the proxy's target by instantiating ``implementation``."""
        if not self._is_concrete(implementation):
            msg = f"to() requires a concrete class, got {implementation!r}."
            raise ProxyWireInvalidRegistrationError(msg)
        self._source = {"concrete_type": implementation}
        return self._register()

    def to_key(self, dependency: Any, *, component: object | None = None) -> Self:
        """Resolve the proxy's target through the binding of another key."""
        target = BindingKey.from_dependency(dependency, component=component)
        if target.is_hidden:
            msg = f"Key {target!r} is reserved for scoped proxy bindings."
            raise ProxyWireInvalidRegistrationError(msg)
        self._source = {"alias_of": target}
        return self._register()

    def to_instance(self, instance: Any) -> Self:
        """Forward every use of the proxy to one fixed instance."""
        self._source = {"instance": instance}
        return self._register()

    def to_provider(self, provider: ProviderObject[Any]) -> Self:
        """Resolve the proxy's target by calling ``provider.get()``."""
        if not callable(getattr(provider, "get", None)):
            msg = f"to_provider() requires an object with a get() method, got {provider!r}."
            raise ProxyWireInvalidRegistrationError(msg)
        self._source = {"provider": provider}
        return self._register()

    def to_factory(self, factory: FactoryProvider) -> Self:
        """Resolve the proxy's target by calling ``factory`` with its dependencies."""
        if not callable(factory):
            msg = f"to_factory() requires a callable, got {factory!r}."
            raise ProxyWireInvalidRegistrationError(msg)
        self._source = {"factory": factory}
        return self._register()

    def in_scope(self, scope: BaseScope) -> Self:
        """Cache the target per entered ``scope``.

        Raises:
            ProxyWireIllegalSingletonScopeError: If ``scope`` is the container
                root scope, which would pin a single target forever.

        """
        if scope.level <= self._container.root_scope.level:
            msg = (
                f"Scoped proxy for '{self._key!r}' cannot be bound in the root scope "
                f"{scope!r}; choose a narrower scope."
            )
            raise ProxyWireIllegalSingletonScopeError(msg)
        self._scope = scope
        self._lifetime = Lifetime.SCOPED
        return self._register()

    def with_lifetime(self, lifetime: Lifetime) -> Self:
        """Set the target's cache policy.

        Raises:
            ProxyWireIllegalSingletonScopeError: For ``Lifetime.SINGLETON``, and
                for ``Lifetime.SCOPED`` before ``in_scope`` chose a scope
                narrower than the container root.

        """
        if lifetime is Lifetime.SINGLETON:
            msg = f"Scoped proxy for '{self._key!r}' cannot be bound as a singleton."
            raise ProxyWireIllegalSingletonScopeError(msg)
        if lifetime is Lifetime.SCOPED and self._scope.level <= self._container.root_scope.level:
            msg = (
                f"Scoped proxy for '{self._key!r}' cannot be scoped to the root scope "
                f"{self._scope!r}; call in_scope() with a narrower scope."
            )
            raise ProxyWireIllegalSingletonScopeError(msg)
        self._lifetime = lifetime
        return self._register()

    def as_eager_singleton(self) -> Self:
        """Always raises: an eager singleton target defeats the proxy.

        Raises:
            ProxyWireIllegalSingletonScopeError: Unconditionally.

        """
        msg = f"Scoped proxy for '{self._key!r}' cannot be bound as an eager singleton."
        raise ProxyWireIllegalSingletonScopeError(msg)

    def _register(self) -> Self:
        if not self._source:
            return self
        self._container._register(  # noqa: SLF001
            ProviderSpec(
                key=self._hidden_key,
                lifetime=self._lifetime,
                scope=self._scope,
                **self._source,
            ),
        )
        return self

    @staticmethod
    def _is_concrete(candidate: Any) -> bool:
        return inspect.isclass(candidate) and not inspect.isabstract(candidate)


class ScopedProxyBuilder:
    """Start scoped proxy bindings against one container."""

    def __init__(
        self,
        container: Container,
        *,
        construction_strategy: ConstructionStrategy = ConstructionStrategy.ALLOCATE_WITHOUT_CONSTRUCTOR,
        proxy_factory: ProxyFactory | None = None,
    ) -> None:
        self._container = container
        self._construction_strategy = construction_strategy
        self._proxy_factory = proxy_factory if proxy_factory is not None else ProxyFactory()

    @property
    def construction_strategy(self) -> ConstructionStrategy:
        return self._construction_strategy

    def with_construction_strategy(self, construction_strategy: ConstructionStrategy) -> Self:
        """Choose how proxies created by later ``bind`` calls are instantiated."""
        self._construction_strategy = construction_strategy
        return self

    def bind(self, dependency: type[T], *, component: object | None = None) -> ScopedProxyBindingBuilder[T]:
        """Bind ``dependency`` (optionally qualified) to a scoped proxy."""
        return self.bind_key(BindingKey.from_dependency(dependency, component=component))

    def bind_key(self, dependency: Any) -> ScopedProxyBindingBuilder[Any]:
        """Bind a key (class, ``Annotated`` alias or ``BindingKey``) to a scoped proxy.

        Registers a ``ScopedProxyProvider`` under the public key and returns
        the builder for the hidden key that holds the real target.

        Raises:
            ProxyWireInvalidRegistrationError: If the key is hidden.

        """
        key = BindingKey.from_dependency(dependency)
        if key.is_hidden:
            msg = f"Key {key!r} is reserved for scoped proxy bindings."
            raise ProxyWireInvalidRegistrationError(msg)

        hidden_key = key.hidden()
        provider: ScopedProxyProvider[Any] = ScopedProxyProvider(
            key=key,
            hidden_key=hidden_key,
            construction_strategy=self._construction_strategy,
            proxy_factory=self._proxy_factory,
        )
        self._container._register(  # noqa: SLF001
            ProviderSpec(
                key=key,
                provider=provider,
                lifetime=Lifetime.SINGLETON,
                scope=self._container.root_scope,
            ),
        )
        logger.debug("Bound %r to a scoped proxy through %r", key, hidden_key)
        return ScopedProxyBindingBuilder(container=self._container, key=key, hidden_key=hidden_key)


class ScopedProxyBinder:
    """Entry point for scoped proxy bindings.

    Examples:
        .. code-block:: python

            ScopedProxyBinder.using(container).bind(Session).to(DbSession).in_scope(
                Scope.REQUEST,
            )

    """

    @staticmethod
    def using(container: Container) -> ScopedProxyBuilder:
        return ScopedProxyBuilder(container)

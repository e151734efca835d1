from proxywire._internal.binder import (
    ProxyProviderState,
    ScopedProxyBinder,
    ScopedProxyBindingBuilder,
    ScopedProxyBuilder,
    ScopedProxyProvider,
)
from proxywire._internal.construction import ConstructionStrategy
from proxywire._internal.constructors import constructor, internal_constructor
from proxywire._internal.container import Container, ContainerProvider, Resolver
from proxywire._internal.dispatch import Invocation, InvocationKind, ProviderDispatch
from proxywire._internal.keys import BindingKey, Component
from proxywire._internal.providers import Lifetime
from proxywire._internal.proxy_factory import ProxyFactory
from proxywire._internal.scope import BaseScope, Scope
from proxywire._internal.stand_in import StandInDescriptor, is_scoped_proxy
from proxywire.exceptions import (
    ProxyWireAmbiguousConstructorError,
    ProxyWireCircularDependencyError,
    ProxyWireConfigurationError,
    ProxyWireConstructionError,
    ProxyWireConstructorInvocationError,
    ProxyWireDependencyNotRegisteredError,
    ProxyWireError,
    ProxyWireIllegalSingletonScopeError,
    ProxyWireInvalidProxyTargetError,
    ProxyWireInvalidRegistrationError,
    ProxyWireNoAccessibleConstructorError,
    ProxyWireScopeMismatchError,
    ProxyWireUninitializedProxyError,
)

__all__ = [
    "BaseScope",
    "BindingKey",
    "Component",
    "ConstructionStrategy",
    "Container",
    "ContainerProvider",
    "Invocation",
    "InvocationKind",
    "Lifetime",
    "ProviderDispatch",
    "ProxyFactory",
    "ProxyProviderState",
    "ProxyWireAmbiguousConstructorError",
    "ProxyWireCircularDependencyError",
    "ProxyWireConfigurationError",
    "ProxyWireConstructionError",
    "ProxyWireConstructorInvocationError",
    "ProxyWireDependencyNotRegisteredError",
    "ProxyWireError",
    "ProxyWireIllegalSingletonScopeError",
    "ProxyWireInvalidProxyTargetError",
    "ProxyWireInvalidRegistrationError",
    "ProxyWireNoAccessibleConstructorError",
    "ProxyWireScopeMismatchError",
    "ProxyWireUninitializedProxyError",
    "Resolver",
    "Scope",
    "ScopedProxyBinder",
    "ScopedProxyBindingBuilder",
    "ScopedProxyBuilder",
    "ScopedProxyProvider",
    "StandInDescriptor",
    "constructor",
    "internal_constructor",
    "is_scoped_proxy",
]

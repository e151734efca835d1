"""Tests for scoped proxy bindings on a container."""

import abc
from concurrent.futures import ThreadPoolExecutor
from typing import Annotated, Any

import pytest
from typing_extensions import final

from proxywire import (
    BindingKey,
    Component,
    ConstructionStrategy,
    Container,
    Lifetime,
    ProxyFactory,
    ProxyProviderState,
    ProxyWireConfigurationError,
    ProxyWireDependencyNotRegisteredError,
    ProxyWireIllegalSingletonScopeError,
    ProxyWireInvalidProxyTargetError,
    ProxyWireInvalidRegistrationError,
    ProxyWireNoAccessibleConstructorError,
    ProxyWireScopeMismatchError,
    ProxyWireUninitializedProxyError,
    Scope,
    ScopedProxyBinder,
    ScopedProxyBuilder,
    ScopedProxyProvider,
    is_scoped_proxy,
)
from proxywire._internal.errors import ErrorReport


class RequestContext:
    def __init__(self) -> None:
        self.token = object()


class Handler:
    def __init__(self, context: RequestContext) -> None:
        self.context = context


class Repository(abc.ABC):
    @abc.abstractmethod
    def find(self, user_id: int) -> str: ...


class SqlRepository(Repository):
    def __init__(self) -> None:
        self.token = object()

    def find(self, user_id: int) -> str:
        return f"user-{user_id}"


class Service(abc.ABC):
    @abc.abstractmethod
    def handle(self) -> str: ...


class ServiceImpl(Service):
    def handle(self) -> str:
        return "handled"


class Greeting:
    def __init__(self, text: str) -> None:
        self.text = text


class Clock:
    def __init__(self, zone: str) -> None:
        self.zone = zone


@final
class Sealed:
    pass


PrimaryContext = Annotated[RequestContext, Component("primary")]


def make_greeting() -> Greeting:
    return Greeting("hello")


class CountingProxyFactory(ProxyFactory):
    def __init__(self) -> None:
        super().__init__()
        self.created = 0

    def try_create(self, *args: Any, **kwargs: Any) -> Any:
        self.created += 1
        return super().try_create(*args, **kwargs)


def provider_for(container: Container, dependency: Any) -> ScopedProxyProvider[Any]:
    provider = container.get_binding(dependency).provider
    assert isinstance(provider, ScopedProxyProvider)
    return provider


class TestBind:
    def test_public_key_gets_singleton_proxy_provider(self, container: Container) -> None:
        builder = ScopedProxyBinder.using(container).bind(RequestContext)

        spec = container.get_binding(RequestContext)
        assert isinstance(spec.provider, ScopedProxyProvider)
        assert spec.lifetime is Lifetime.SINGLETON
        assert builder.key == BindingKey(RequestContext)

    def test_hidden_key_differs_from_public_key(self, container: Container) -> None:
        builder = ScopedProxyBinder.using(container).bind(RequestContext)

        assert builder.hidden_key != builder.key
        assert builder.hidden_key.is_hidden
        assert builder.hidden_key.dependency_type is RequestContext

    def test_untargeted_concrete_type_binds_to_itself(self, container: Container) -> None:
        builder = ScopedProxyBinder.using(container).bind(RequestContext)

        hidden_spec = container.get_binding(builder.hidden_key)
        assert hidden_spec.concrete_type is RequestContext
        assert hidden_spec.lifetime is Lifetime.TRANSIENT

    def test_untargeted_abstract_type_fails_on_compile(self, container: Container) -> None:
        ScopedProxyBinder.using(container).bind(Repository)

        with pytest.raises(ProxyWireConfigurationError) as exc_info:
            container.compile()

        assert [type(error) for error in exc_info.value.errors] == [
            ProxyWireDependencyNotRegisteredError,
        ]
        assert "has no target binding" in str(exc_info.value)

    def test_hidden_key_cannot_be_bound_again(self, container: Container) -> None:
        builder = ScopedProxyBinder.using(container).bind(RequestContext)

        with pytest.raises(ProxyWireInvalidRegistrationError, match="reserved"):
            ScopedProxyBinder.using(container).bind_key(builder.hidden_key)

    def test_to_rejects_abstract_implementation(self, container: Container) -> None:
        with pytest.raises(ProxyWireInvalidRegistrationError, match="concrete class"):
            ScopedProxyBinder.using(container).bind(Repository).to(Repository)


class TestForbiddenSingletonTargets:
    def test_singleton_lifetime_is_rejected(self, container: Container) -> None:
        builder = ScopedProxyBinder.using(container).bind(RequestContext)

        with pytest.raises(ProxyWireIllegalSingletonScopeError):
            builder.with_lifetime(Lifetime.SINGLETON)

        assert container.get_binding(builder.hidden_key).lifetime is Lifetime.TRANSIENT

    def test_root_scope_is_rejected(self, container: Container) -> None:
        builder = ScopedProxyBinder.using(container).bind(RequestContext)

        with pytest.raises(ProxyWireIllegalSingletonScopeError, match="root scope"):
            builder.in_scope(Scope.APP)

        assert container.get_binding(builder.hidden_key).lifetime is Lifetime.TRANSIENT

    def test_scoped_lifetime_without_narrower_scope_is_rejected(
        self,
        container: Container,
    ) -> None:
        builder = ScopedProxyBinder.using(container).bind(RequestContext)

        with pytest.raises(ProxyWireIllegalSingletonScopeError, match="root scope"):
            builder.with_lifetime(Lifetime.SCOPED)

        assert container.get_binding(builder.hidden_key).lifetime is Lifetime.TRANSIENT

    def test_scoped_lifetime_after_in_scope_is_allowed(self, container: Container) -> None:
        builder = ScopedProxyBinder.using(container).bind(RequestContext)
        builder.in_scope(Scope.REQUEST).with_lifetime(Lifetime.SCOPED)
        proxy = container.resolve(RequestContext)

        with container.enter_scope(Scope.REQUEST):
            first = proxy.token
        with container.enter_scope(Scope.REQUEST):
            second = proxy.token

        assert first is not second

    def test_eager_singleton_is_rejected(self, container: Container) -> None:
        builder = ScopedProxyBinder.using(container).bind(RequestContext).to(RequestContext)

        with pytest.raises(ProxyWireIllegalSingletonScopeError, match="eager singleton"):
            builder.as_eager_singleton()

        assert not container.get_binding(builder.hidden_key).eager

    def test_illegal_scope_error_is_a_registration_error(self) -> None:
        assert issubclass(ProxyWireIllegalSingletonScopeError, ProxyWireInvalidRegistrationError)


class TestProviderLifecycle:
    def test_get_before_compile_raises(self, container: Container) -> None:
        ScopedProxyBinder.using(container).bind(RequestContext)
        provider = provider_for(container, RequestContext)

        assert provider.state is ProxyProviderState.UNINITIALIZED
        with pytest.raises(ProxyWireUninitializedProxyError):
            provider.get()

    def test_dependencies_switch_to_hidden_key(self, container: Container) -> None:
        builder = ScopedProxyBinder.using(container).bind(RequestContext)
        provider = provider_for(container, RequestContext)

        assert provider.dependencies == (BindingKey(Container),)

        container.compile()

        assert provider.state is ProxyProviderState.INITIALIZED
        assert provider.dependencies == (builder.hidden_key,)

    def test_second_initialize_is_a_no_op(self, container: Container) -> None:
        ScopedProxyBinder.using(container).bind(RequestContext)
        container.compile()
        provider = provider_for(container, RequestContext)
        proxy = provider.get()
        errors = ErrorReport()

        provider.initialize(container, errors)

        assert provider.get() is proxy
        assert not errors.has_errors()

    def test_recompiling_keeps_the_same_proxy(self, container: Container) -> None:
        ScopedProxyBinder.using(container).bind(RequestContext)
        first = container.resolve(RequestContext)

        container.add_concrete(Handler)
        container.compile()

        assert container.resolve(RequestContext) is first

    def test_concurrent_initialize_builds_one_proxy(self, container: Container) -> None:
        factory = CountingProxyFactory()
        ScopedProxyBuilder(container, proxy_factory=factory).bind(RequestContext)
        provider = provider_for(container, RequestContext)

        def initialize(_: int) -> Any:
            provider.initialize(container, ErrorReport())
            return provider.get()

        with ThreadPoolExecutor(max_workers=8) as executor:
            proxies = list(executor.map(initialize, range(16)))

        assert factory.created == 1
        assert all(proxy is proxies[0] for proxy in proxies)

    def test_failed_initialization_stays_uninitialized(self, container: Container) -> None:
        ScopedProxyBinder.using(container).bind(Sealed)
        provider = provider_for(container, Sealed)

        with pytest.raises(ProxyWireConfigurationError) as exc_info:
            container.compile()

        assert [type(error) for error in exc_info.value.errors] == [
            ProxyWireInvalidProxyTargetError,
        ]
        assert provider.state is ProxyProviderState.UNINITIALIZED


class TestScopedForwarding:
    def test_root_consumer_sees_current_request_value(self, container: Container) -> None:
        ScopedProxyBinder.using(container).bind(RequestContext).in_scope(Scope.REQUEST)
        container.add_concrete(Handler, lifetime=Lifetime.SINGLETON)
        container.compile()

        handler = container.resolve(Handler)

        with container.enter_scope(Scope.REQUEST):
            first = handler.context.token
            assert handler.context.token is first
            assert container.resolve(RequestContext).token is first

        with container.enter_scope(Scope.REQUEST):
            second = handler.context.token

        assert first is not second
        assert container.resolve(Handler) is handler

    def test_proxy_is_instance_of_public_type(self, container: Container) -> None:
        ScopedProxyBinder.using(container).bind(RequestContext).in_scope(Scope.REQUEST)

        proxy = container.resolve(RequestContext)

        assert isinstance(proxy, RequestContext)
        assert is_scoped_proxy(proxy)
        assert container.resolve(RequestContext) is proxy

    def test_use_outside_of_scope_raises(self, container: Container) -> None:
        ScopedProxyBinder.using(container).bind(RequestContext).in_scope(Scope.REQUEST)
        proxy = container.resolve(RequestContext)

        with pytest.raises(ProxyWireScopeMismatchError):
            _ = proxy.token

    def test_every_method_call_resolves_the_target_again(self, container: Container) -> None:
        created: list[ServiceImpl] = []

        def make_service() -> ServiceImpl:
            service = ServiceImpl()
            created.append(service)
            return service

        ScopedProxyBinder.using(container).bind(Service).to_factory(make_service)
        proxy = container.resolve(Service)

        assert proxy.handle() == "handled"
        assert proxy.handle() == "handled"

        assert len(created) == 2
        assert created[0] is not created[1]
        assert container.resolve(Service) is proxy

    def test_transient_target_is_new_on_every_use(self, container: Container) -> None:
        ScopedProxyBinder.using(container).bind(RequestContext)
        proxy = container.resolve(RequestContext)

        assert proxy.token is not proxy.token

    def test_to_implementation(self, container: Container) -> None:
        ScopedProxyBinder.using(container).bind(Repository).to(SqlRepository).in_scope(
            Scope.REQUEST,
        )
        repository = container.resolve(Repository)

        with container.enter_scope(Scope.REQUEST):
            assert isinstance(repository, Repository)
            assert repository.find(7) == "user-7"
            assert repository.token is repository.token

    def test_to_key_follows_other_binding(self, container: Container) -> None:
        container.add_concrete(SqlRepository, lifetime=Lifetime.SCOPED, scope=Scope.REQUEST)
        ScopedProxyBinder.using(container).bind(Repository).to_key(SqlRepository)
        repository = container.resolve(Repository)

        with container.enter_scope(Scope.REQUEST):
            assert repository.token is container.resolve(SqlRepository).token

    def test_to_instance_forwards_to_fixed_value(self, container: Container) -> None:
        context = RequestContext()
        ScopedProxyBinder.using(container).bind(RequestContext).to_instance(context)

        proxy = container.resolve(RequestContext)

        assert proxy is not context
        assert proxy.token is context.token

    def test_to_provider(self, container: Container) -> None:
        calls: list[RequestContext] = []

        class RecordingProvider:
            def get(self) -> RequestContext:
                context = RequestContext()
                calls.append(context)
                return context

        ScopedProxyBinder.using(container).bind(RequestContext).to_provider(RecordingProvider())
        proxy = container.resolve(RequestContext)

        token = proxy.token

        assert [context.token for context in calls] == [token]

    def test_to_factory(self, container: Container) -> None:
        ScopedProxyBinder.using(container).bind(Greeting).to_factory(make_greeting).in_scope(
            Scope.REQUEST,
        )

        with container.enter_scope(Scope.REQUEST):
            assert container.resolve(Greeting).text == "hello"

    def test_qualified_key(self, container: Container) -> None:
        ScopedProxyBinder.using(container).bind(RequestContext, component="primary").in_scope(
            Scope.REQUEST,
        )

        proxy = container.resolve(PrimaryContext)
        plain = container.resolve(RequestContext)

        assert is_scoped_proxy(proxy)
        assert not is_scoped_proxy(plain)

    def test_bind_key_with_annotated_alias(self, container: Container) -> None:
        builder = ScopedProxyBinder.using(container).bind_key(PrimaryContext)

        assert builder.key == BindingKey(RequestContext, Component("primary"))
        assert is_scoped_proxy(container.resolve(PrimaryContext))


class TestConstructionStrategies:
    def test_null_arguments_leaves_constructor_state_on_proxy(self, container: Container) -> None:
        (
            ScopedProxyBinder.using(container)
            .with_construction_strategy(ConstructionStrategy.NULL_ARGUMENTS)
            .bind(Greeting)
            .to_factory(make_greeting)
        )

        proxy = container.resolve(Greeting)

        assert vars(proxy) == {"text": None}
        assert proxy.text == "hello"

    def test_require_no_arg_reports_one_error(self, container: Container) -> None:
        (
            ScopedProxyBinder.using(container)
            .with_construction_strategy(ConstructionStrategy.REQUIRE_NO_ARG_CONSTRUCTOR)
            .bind(Greeting)
            .to_factory(make_greeting)
        )

        with pytest.raises(ProxyWireConfigurationError) as exc_info:
            container.compile()

        assert [type(error) for error in exc_info.value.errors] == [
            ProxyWireNoAccessibleConstructorError,
        ]

    def test_compile_reports_every_construction_error(self, container: Container) -> None:
        binder = ScopedProxyBinder.using(container).with_construction_strategy(
            ConstructionStrategy.REQUIRE_NO_ARG_CONSTRUCTOR,
        )
        binder.bind(Greeting).to_factory(make_greeting)
        binder.bind(Clock).to_instance(Clock("UTC"))

        with pytest.raises(ProxyWireConfigurationError, match="2 errors") as exc_info:
            container.compile()

        assert len(exc_info.value.errors) == 2
        assert all(
            isinstance(error, ProxyWireNoAccessibleConstructorError)
            for error in exc_info.value.errors
        )

    def test_strategy_applies_to_later_binds_only(self, container: Container) -> None:
        builder = ScopedProxyBinder.using(container)
        builder.bind(RequestContext)
        builder.with_construction_strategy(ConstructionStrategy.NULL_ARGUMENTS)
        builder.bind(Greeting).to_factory(make_greeting)

        assert (
            provider_for(container, RequestContext).construction_strategy
            is ConstructionStrategy.ALLOCATE_WITHOUT_CONSTRUCTOR
        )
        assert (
            provider_for(container, Greeting).construction_strategy
            is ConstructionStrategy.NULL_ARGUMENTS
        )


class TestCaptiveDependency:
    def test_singleton_consumer_of_scoped_value_fails_without_proxy(
        self,
        container: Container,
    ) -> None:
        container.add_concrete(RequestContext, lifetime=Lifetime.SCOPED, scope=Scope.REQUEST)
        container.add_concrete(Handler, lifetime=Lifetime.SINGLETON)

        with pytest.raises(ProxyWireConfigurationError) as exc_info:
            container.compile()

        (error,) = exc_info.value.errors
        assert isinstance(error, ProxyWireScopeMismatchError)
        assert "scoped proxy" in str(error)

    def test_scoped_proxy_resolves_captive_dependency(self, container: Container) -> None:
        container.add_concrete(Handler, lifetime=Lifetime.SINGLETON)
        ScopedProxyBinder.using(container).bind(RequestContext).in_scope(Scope.REQUEST)

        container.compile()

        assert is_scoped_proxy(container.resolve(Handler).context)

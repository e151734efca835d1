"""Shared pytest fixtures for proxywire tests."""

import pytest

from proxywire import Container, ProxyFactory
from proxywire._internal.errors import ErrorReport
from proxywire._internal.stand_in import StandInRegistry


@pytest.fixture()
def container() -> Container:
    """Default container with auto-registration enabled."""
    return Container()


@pytest.fixture()
def strict_container() -> Container:
    """Container that only resolves explicit registrations."""
    return Container(autoregister_concrete_types=False)


@pytest.fixture()
def errors() -> ErrorReport:
    return ErrorReport()


@pytest.fixture()
def registry() -> StandInRegistry:
    """Isolated stand-in registry, so memoization tests start empty."""
    return StandInRegistry()


@pytest.fixture()
def proxy_factory(registry: StandInRegistry) -> ProxyFactory:
    return ProxyFactory(registry=registry)

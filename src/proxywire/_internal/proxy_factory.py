from __future__ import annotations

import logging
from typing import Any, TypeVar, cast

from proxywire._internal.construction import ConstructionStrategy
from proxywire._internal.dispatch import DispatchDelegate
from proxywire._internal.errors import ErrorReport
from proxywire._internal.stand_in import (
    StandInDescriptor,
    StandInRegistry,
    get_stand_in_registry,
)
from proxywire.exceptions import ProxyWireInvalidProxyTargetError

T = TypeVar("T")

logger = logging.getLogger(__name__)


class ProxyFactory:
    """Build forwarding stand-ins for target types.

    A proxy is an instance of a generated subclass of the target type. The
    factory instantiates that subclass with a ``ConstructionStrategy`` and then
    attaches a dispatch delegate; from then on every attribute access and
    special method call on the proxy is handed to the delegate.

    Stand-in classes are memoized per target type in a process-wide
    ``StandInRegistry``. The factory itself keeps no reference to the proxies
    it creates.

    Examples:
        .. code-block:: python

            factory = ProxyFactory()
            proxy = factory.create(Service, ProviderDispatch(provider))
            proxy.handle()  # runs on provider.get()

    """

    def __init__(
        self,
        construction_strategy: ConstructionStrategy = ConstructionStrategy.ALLOCATE_WITHOUT_CONSTRUCTOR,
        *,
        registry: StandInRegistry | None = None,
    ) -> None:
        """Initialize the factory.

        Args:
            construction_strategy: Strategy used when ``create``/``try_create``
                are called without an explicit one.
            registry: Stand-in registry to use. Defaults to the process-wide
                registry.

        """
        self.construction_strategy = construction_strategy
        self._registry = registry if registry is not None else get_stand_in_registry()

    def stand_in_for(self, target_type: type[Any]) -> StandInDescriptor:
        """Return the memoized stand-in descriptor for ``target_type``.

        Raises:
            ProxyWireInvalidProxyTargetError: If the target cannot be subclassed.

        """
        return self._registry.descriptor_for(target_type)

    def try_create(
        self,
        target_type: type[T],
        delegate: DispatchDelegate,
        *,
        errors: ErrorReport,
        construction_strategy: ConstructionStrategy | None = None,
    ) -> T | None:
        """Create a wired proxy, collecting failures instead of raising them.

        Args:
            target_type: Type the proxy must be an instance of.
            delegate: Receives every operation performed on the proxy.
            errors: Report collecting target and construction failures.
            construction_strategy: Overrides the factory's default strategy.

        Returns:
            The proxy, or ``None`` if an error was reported. No delegate is
            attached when construction fails.

        """
        strategy = construction_strategy or self.construction_strategy
        try:
            descriptor = self.stand_in_for(target_type)
        except ProxyWireInvalidProxyTargetError as error:
            errors.add(error)
            return None

        instance = strategy.create_instance(descriptor.stand_in_type, errors)
        if instance is None:
            logger.debug(
                "Construction of scoped proxy for %s failed with %s",
                target_type.__qualname__,
                strategy.name,
            )
            return None

        descriptor.attach(instance, delegate)
        return cast("T", instance)

    def create(
        self,
        target_type: type[T],
        delegate: DispatchDelegate,
        *,
        construction_strategy: ConstructionStrategy | None = None,
    ) -> T:
        """Create a wired proxy or raise every collected failure.

        Args:
            target_type: Type the proxy must be an instance of.
            delegate: Receives every operation performed on the proxy.
            construction_strategy: Overrides the factory's default strategy.

        Raises:
            ProxyWireConfigurationError: If the stand-in cannot be generated or
                constructed.

        """
        errors = ErrorReport()
        proxy = self.try_create(
            target_type,
            delegate,
            errors=errors,
            construction_strategy=construction_strategy,
        )
        errors.raise_if_errors()
        return cast("T", proxy)

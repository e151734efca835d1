from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any, TypeVar

from proxywire._internal.allocation import get_instance_allocator
from proxywire._internal.constructors import ConstructorRef, find_accessible_constructors
from proxywire._internal.errors import ErrorReport
from proxywire.exceptions import (
    ProxyWireAmbiguousConstructorError,
    ProxyWireConstructorInvocationError,
    ProxyWireNoAccessibleConstructorError,
)

T = TypeVar("T")

logger = logging.getLogger(__name__)


class ConstructionStrategy(Enum):
    """Select how a stand-in type is instantiated without real arguments.

    Strategies never raise for an unusable type. They append a
    ``ProxyWireConstructionError`` to the given ``ErrorReport`` and return
    ``None`` so the container can report every problem of a binding graph at
    once.
    """

    ALLOCATE_WITHOUT_CONSTRUCTOR = "allocate_without_constructor"
    """Bypass every constructor and allocate a bare instance.

    Works for any class the allocator supports, whatever its constructors
    require. This is the default strategy.
    """

    NULL_ARGUMENTS = "null_arguments"
    """Call the single accessible constructor with ``None`` for each parameter.

    Fails when the class has no accessible constructor or more than one. Do not
    use it for classes whose constructors use or validate their arguments.
    """

    REQUIRE_NO_ARG_CONSTRUCTOR = "require_no_arg_constructor"
    """Call the class's only accessible constructor, which must take no arguments.

    The strictest strategy: only classes without constructor-injected
    dependencies qualify.
    """

    def create_instance(self, stand_in_type: type[T], errors: ErrorReport) -> T | None:
        """Create an instance of ``stand_in_type`` according to this strategy.

        Args:
            stand_in_type: Class to instantiate, usually a generated stand-in.
            errors: Report collecting construction failures.

        Returns:
            The new instance, or ``None`` if an error was reported.

        """
        return _STRATEGY_IMPLEMENTATIONS[self](stand_in_type, errors)


def _allocate_without_constructor(stand_in_type: type[T], errors: ErrorReport) -> T | None:
    try:
        return get_instance_allocator().allocate(stand_in_type)
    except (TypeError, ValueError) as error:
        failure = ProxyWireConstructorInvocationError(
            f"Cannot allocate '{_type_name(stand_in_type)}' without calling a constructor: "
            f"{error}",
        )
        failure.__cause__ = error
        errors.add(failure)
        return None


def _call_with_null_arguments(stand_in_type: type[T], errors: ErrorReport) -> T | None:
    constructors = find_accessible_constructors(stand_in_type)
    if not constructors:
        errors.add(
            ProxyWireNoAccessibleConstructorError(
                f"'{_type_name(stand_in_type)}' has no accessible constructor. "
                "Use a different ConstructionStrategy to create proxies of that type.",
            ),
        )
        return None
    if len(constructors) > 1:
        candidates = ", ".join(ref.describe() for ref in constructors)
        errors.add(
            ProxyWireAmbiguousConstructorError(
                f"'{_type_name(stand_in_type)}' has {len(constructors)} accessible "
                f"constructors ({candidates}); cannot choose one to call with None arguments.",
            ),
        )
        return None

    ref = constructors[0]
    arguments = {parameter.name: None for parameter in ref.parameters}
    return _call_constructor(ref, stand_in_type, arguments, errors)


def _call_no_arg_constructor(stand_in_type: type[T], errors: ErrorReport) -> T | None:
    constructors = find_accessible_constructors(stand_in_type)
    if len(constructors) != 1 or constructors[0].required_parameters:
        found = ", ".join(ref.describe() for ref in constructors) or "none"
        errors.add(
            ProxyWireNoAccessibleConstructorError(
                f"'{_type_name(stand_in_type)}' has no single no-argument constructor "
                f"(accessible constructors: {found}). Use a different ConstructionStrategy "
                "to create proxies of that type.",
            ),
        )
        return None
    return _call_constructor(constructors[0], stand_in_type, {}, errors)


def _call_constructor(
    ref: ConstructorRef,
    stand_in_type: type[T],
    arguments: dict[str, Any],
    errors: ErrorReport,
) -> T | None:
    try:
        instance = ref.invoke(stand_in_type, arguments)
    except Exception as error:  # noqa: BLE001
        failure = ProxyWireConstructorInvocationError(
            f"Error calling constructor {ref.describe()} for '{_type_name(stand_in_type)}': "
            f"{type(error).__name__}: {error}",
        )
        failure.__cause__ = error
        errors.add(failure)
        return None

    if not isinstance(instance, stand_in_type):
        errors.add(
            ProxyWireConstructorInvocationError(
                f"Constructor {ref.describe()} returned {type(instance).__qualname__}, "
                f"expected an instance of '{_type_name(stand_in_type)}'.",
            ),
        )
        return None

    logger.debug("Constructed %s through %s", _type_name(stand_in_type), ref.describe())
    return instance


def _type_name(cls: type[Any]) -> str:
    return getattr(cls, "__qualname__", repr(cls))


_STRATEGY_IMPLEMENTATIONS: dict[
    ConstructionStrategy,
    Callable[[type[Any], ErrorReport], Any],
] = {
    ConstructionStrategy.ALLOCATE_WITHOUT_CONSTRUCTOR: _allocate_without_constructor,
    ConstructionStrategy.NULL_ARGUMENTS: _call_with_null_arguments,
    ConstructionStrategy.REQUIRE_NO_ARG_CONSTRUCTOR: _call_no_arg_constructor,
}

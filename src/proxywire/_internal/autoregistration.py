from __future__ import annotations

import datetime
import decimal
import inspect
import pathlib
import uuid
from dataclasses import dataclass
from typing import Any, TypeGuard

from proxywire._internal.keys import BindingKey
from proxywire._internal.stand_in import STAND_IN_TARGET_ATTRIBUTE
from proxywire._internal.type_checks import is_runtime_class


@dataclass(frozen=True, slots=True)
class ConcreteTypeAutoregistrationPolicy:
    """Decide which unregistered keys the container may register on demand.

    Only plain, unqualified keys of concrete user classes qualify. Qualified
    keys, hidden keys, builtins, abstract classes and value-like standard
    library types always need an explicit binding.
    """

    ignored_base_types: tuple[type[Any], ...] = (
        pathlib.PurePath,
        datetime.datetime,
        datetime.date,
        datetime.time,
        datetime.timedelta,
        uuid.UUID,
        decimal.Decimal,
    )

    def is_eligible_key(self, key: BindingKey) -> bool:
        """Return true when ``key`` may be bound to its own type automatically."""
        if key.qualifier is not None:
            return False
        return self.is_eligible_concrete(key.dependency_type)

    def is_eligible_concrete(self, candidate: object) -> TypeGuard[type[Any]]:
        """Return true when a candidate can be auto-registered as a concrete provider.

        Args:
            candidate: Value being checked for eligibility.

        """
        if not is_runtime_class(candidate):
            return False
        if candidate.__module__ == "builtins":
            return False
        if inspect.isabstract(candidate):
            return False
        if issubclass(candidate, type):
            return False
        if is_stand_in_class(candidate):
            return False
        return not issubclass(candidate, self.ignored_base_types)


def is_stand_in_class(candidate: type[Any]) -> bool:
    """Return true for generated stand-in classes, which are never wired directly."""
    return STAND_IN_TARGET_ATTRIBUTE in vars(candidate)

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any


class BaseScope(int):
    """Represent a numeric scope level.

    A scope behaves like an ``int`` so ordering follows nesting depth. Values
    cached for a scope live as long as the resolver that entered it.
    ``skippable`` scopes are passed over when ``enter_scope()`` is called
    without an explicit target.
    """

    def __new__(cls, *args: Any, **_kwargs: Any) -> BaseScope:  # noqa: PYI034
        return super().__new__(cls, *args)

    def __init__(self, level: int, *, skippable: bool = False) -> None:
        self.level = level
        self.skippable = skippable
        self.scope_name = f"LEVEL_{level}"

    def __repr__(self) -> str:
        return f"Scope.{self.scope_name}({self.level})"


@dataclass(frozen=True, kw_only=True)
class BaseScopes:
    """Collect scope constants in declaration order."""

    def __post_init__(self) -> None:
        for name, value in self.__dict__.items():
            if isinstance(value, BaseScope):
                value.scope_name = name

    def __iter__(self) -> Iterator[BaseScope]:
        for value in self.__dict__.values():
            if isinstance(value, BaseScope):
                yield value

    def next_after(self, scope: BaseScope) -> BaseScope | None:
        """Return the first non-skippable scope deeper than ``scope``."""
        deeper = sorted(
            (candidate for candidate in self if candidate.level > scope.level),
            key=lambda candidate: candidate.level,
        )
        return next((candidate for candidate in deeper if not candidate.skippable), None)


@dataclass(frozen=True)
class Scopes(BaseScopes):
    """Define the built-in scope ladder ordered by ``level``.

    ``APP`` is the container root: ``SCOPED`` values declared there are shared
    for the container lifetime. Request-bound values are usually declared on
    ``REQUEST``.

    Examples:
        .. code-block:: python

            with container.enter_scope(Scope.REQUEST):
                service = container.resolve(Service)

    """

    APP: BaseScope = field(default=BaseScope(1))
    SESSION: BaseScope = field(default=BaseScope(2, skippable=True))
    REQUEST: BaseScope = field(default=BaseScope(3))
    ACTION: BaseScope = field(default=BaseScope(4))
    STEP: BaseScope = field(default=BaseScope(5))


Scope = Scopes()
"""Provide the default scope constants used by container APIs."""

from __future__ import annotations

import logging
from collections.abc import Iterator

from proxywire.exceptions import ProxyWireConfigurationError, ProxyWireError

logger = logging.getLogger(__name__)


class ErrorReport:
    """Collect configuration errors instead of raising them one by one.

    Construction strategies, the proxy factory and container finalization all
    append to the same report so that one ``compile`` call surfaces every
    problem in the binding graph. ``raise_if_errors`` turns a non-empty report
    into a single ``ProxyWireConfigurationError``.
    """

    __slots__ = ("_errors",)

    def __init__(self) -> None:
        self._errors: list[ProxyWireError] = []

    def add(self, error: ProxyWireError) -> None:
        """Record an error without raising it.

        Args:
            error: Error instance describing one configuration problem.

        """
        logger.debug("Collected configuration error: %s", error)
        self._errors.append(error)

    def merge(self, other: ErrorReport) -> None:
        """Append every error collected by another report."""
        self._errors.extend(other)

    def has_errors(self) -> bool:
        return bool(self._errors)

    def raise_if_errors(self) -> None:
        """Raise one aggregated error if anything was collected.

        Raises:
            ProxyWireConfigurationError: If the report holds at least one error.

        """
        if self._errors:
            raise ProxyWireConfigurationError(self._errors)

    def __iter__(self) -> Iterator[ProxyWireError]:
        return iter(tuple(self._errors))

    def __len__(self) -> int:
        return len(self._errors)

    def __repr__(self) -> str:
        return f"ErrorReport({self._errors!r})"

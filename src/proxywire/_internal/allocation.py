from __future__ import annotations

import functools
import logging
import threading
import types
from collections.abc import Callable
from typing import Any, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class InstanceAllocator:
    """Create instances without running any Python-level ``__new__`` or ``__init__``.

    For every class the allocator picks the nearest built-in ``__new__`` on the
    MRO (``object.__new__`` for ordinary classes, ``int.__new__`` for an
    ``int`` subclass and so on) and calls it with the class alone. The result
    is the zero value of the built-in base with no instance attributes set.
    Instantiators are cached per class.
    """

    def __init__(self) -> None:
        self._instantiators: dict[type[Any], Callable[[], Any]] = {}
        self._lock = threading.Lock()

    def instantiator_of(self, cls: type[T]) -> Callable[[], T]:
        """Return a cached zero-argument callable allocating ``cls``.

        Args:
            cls: Class to allocate.

        """
        instantiator = self._instantiators.get(cls)
        if instantiator is not None:
            return instantiator

        with self._lock:
            instantiator = self._instantiators.get(cls)
            if instantiator is None:
                instantiator = functools.partial(_builtin_new_of(cls), cls)
                self._instantiators[cls] = instantiator
        return instantiator

    def allocate(self, cls: type[T]) -> T:
        """Allocate an instance of ``cls`` bypassing its constructors."""
        return self.instantiator_of(cls)()


def _builtin_new_of(cls: type[Any]) -> Callable[..., Any]:
    for klass in cls.__mro__:
        new = vars(klass).get("__new__")
        if isinstance(new, types.BuiltinFunctionType):
            return new
    return object.__new__


class _AllocatorHolder:
    """Own the process-wide allocator and create it on first use."""

    def __init__(self) -> None:
        self._allocator: InstanceAllocator | None = None
        self._lock = threading.Lock()

    def get(self) -> InstanceAllocator:
        allocator = self._allocator
        if allocator is not None:
            return allocator
        with self._lock:
            if self._allocator is None:
                logger.debug("Creating process-wide instance allocator")
                self._allocator = InstanceAllocator()
            return self._allocator


_holder = _AllocatorHolder()


def get_instance_allocator() -> InstanceAllocator:
    """Return the process-wide ``InstanceAllocator``."""
    return _holder.get()

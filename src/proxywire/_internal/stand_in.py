from __future__ import annotations

import logging
import threading
import types
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from proxywire._internal.dispatch import DispatchDelegate, Invocation, InvocationKind
from proxywire._internal.type_checks import is_runtime_class
from proxywire.exceptions import ProxyWireError, ProxyWireInvalidProxyTargetError

logger = logging.getLogger(__name__)

DISPATCH_SLOT = "_proxywire_dispatch"
"""Name of the single per-instance slot holding the dispatch delegate."""

STAND_IN_TARGET_ATTRIBUTE = "__proxywire_target__"

# Attributes an attached proxy answers itself instead of forwarding.
_LOCAL_ATTRIBUTES = frozenset({DISPATCH_SLOT, "__class__", "__dict__"})

# Special methods that describe the object itself (creation, pickling, class
# machinery) rather than the target's behavior.
_NEVER_FORWARDED = frozenset(
    {
        "__new__",
        "__init__",
        "__del__",
        "__getattribute__",
        "__getattr__",
        "__setattr__",
        "__delattr__",
        "__init_subclass__",
        "__subclasshook__",
        "__class_getitem__",
        "__set_name__",
        "__reduce__",
        "__reduce_ex__",
        "__getstate__",
        "__setstate__",
        "__getnewargs__",
        "__getnewargs_ex__",
        "__sizeof__",
        "__instancecheck__",
        "__subclasscheck__",
        "__mro_entries__",
        "__prepare__",
    },
)


@dataclass(frozen=True, slots=True)
class StandInDescriptor:
    """Describe the generated stand-in class for one target type.

    The stand-in subclasses the target, so instances pass ``isinstance`` checks
    for it. It has exactly one dispatch slot; once a delegate is attached there,
    attribute access and every special method of the target are forwarded to
    the delegate instead of running the target's code.
    """

    target_type: type[Any]
    stand_in_type: type[Any]
    forwarded_special_methods: frozenset[str]
    dispatch_slot: str = DISPATCH_SLOT

    def attach(self, instance: Any, delegate: DispatchDelegate) -> None:
        """Attach the dispatch delegate to a freshly constructed stand-in.

        Args:
            instance: Instance of ``stand_in_type`` without a delegate.
            delegate: Callable receiving every forwarded ``Invocation``.

        Raises:
            ProxyWireError: If ``instance`` is not a stand-in of this descriptor
                or already has a delegate.

        """
        if type(instance) is not self.stand_in_type:
            msg = (
                f"Cannot attach a delegate to {type(instance).__qualname__}; "
                f"expected an instance of {self.stand_in_type.__qualname__}."
            )
            raise ProxyWireError(msg)
        if read_dispatch(instance) is not None:
            msg = f"Scoped proxy for '{self.target_type.__qualname__}' already has a delegate."
            raise ProxyWireError(msg)
        object.__setattr__(instance, self.dispatch_slot, delegate)


def read_dispatch(instance: Any) -> DispatchDelegate | None:
    """Return the delegate attached to a stand-in instance, if any."""
    try:
        return object.__getattribute__(instance, DISPATCH_SLOT)
    except AttributeError:
        return None


def is_scoped_proxy(candidate: object) -> bool:
    """Return true when ``candidate`` is an instance of a generated stand-in class."""
    return STAND_IN_TARGET_ATTRIBUTE in vars(type(candidate))


def build_stand_in(target_type: type[Any]) -> StandInDescriptor:
    """Generate a new stand-in class for ``target_type``.

    Prefer ``StandInRegistry.descriptor_for``, which memoizes the result.

    Raises:
        ProxyWireInvalidProxyTargetError: If the target cannot be subclassed.

    """
    if not is_runtime_class(target_type):
        msg = f"Scoped proxy target must be a class, got {target_type!r}."
        raise ProxyWireInvalidProxyTargetError(msg)
    if getattr(target_type, "__final__", False):
        msg = f"Cannot create a scoped proxy for final class '{target_type.__qualname__}'."
        raise ProxyWireInvalidProxyTargetError(msg)

    special_methods = _collect_special_methods(target_type)
    name = f"{target_type.__name__}__ScopedProxy"

    def exec_body(namespace: dict[str, Any]) -> None:
        namespace["__module__"] = target_type.__module__
        namespace["__qualname__"] = f"{target_type.__qualname__}__ScopedProxy"
        namespace["__doc__"] = f"Scoped proxy forwarding to '{target_type.__qualname__}'."
        # Variable-size builtins (int, tuple, ...) reject non-empty __slots__;
        # their stand-ins keep the delegate in the instance __dict__ instead.
        if target_type.__itemsize__ == 0:
            namespace["__slots__"] = (DISPATCH_SLOT,)
        namespace[STAND_IN_TARGET_ATTRIBUTE] = target_type
        namespace.update(_attribute_hooks(target_type))
        for method_name, original in special_methods.items():
            namespace[method_name] = _special_method_forwarder(
                target_type=target_type,
                name=method_name,
                original=original,
            )

    try:
        stand_in_type = types.new_class(name, (target_type,), exec_body=exec_body)
    except TypeError as error:
        msg = f"Cannot subclass '{target_type.__qualname__}' for a scoped proxy: {error}"
        raise ProxyWireInvalidProxyTargetError(msg) from error

    if getattr(stand_in_type, "__abstractmethods__", None):
        # Every abstract member is forwarded, so the stand-in is concrete.
        stand_in_type.__abstractmethods__ = frozenset()

    logger.debug(
        "Generated stand-in %s forwarding %d special methods",
        stand_in_type.__qualname__,
        len(special_methods),
    )
    return StandInDescriptor(
        target_type=target_type,
        stand_in_type=stand_in_type,
        forwarded_special_methods=frozenset(special_methods),
    )


def _collect_special_methods(target_type: type[Any]) -> dict[str, Callable[..., Any]]:
    special_methods: dict[str, Callable[..., Any]] = {}
    seen: set[str] = set()
    for klass in target_type.__mro__:
        for name, raw_value in vars(klass).items():
            if not (name.startswith("__") and name.endswith("__")):
                continue
            if name in seen or name in _NEVER_FORWARDED:
                continue
            seen.add(name)
            if isinstance(raw_value, (classmethod, staticmethod, type)) or not callable(raw_value):
                continue
            special_methods[name] = getattr(target_type, name)
    return special_methods


def _special_method_forwarder(
    *,
    target_type: type[Any],
    name: str,
    original: Callable[..., Any],
) -> Callable[..., Any]:
    def forward(self: Any, *args: Any, **kwargs: Any) -> Any:
        dispatch = read_dispatch(self)
        if dispatch is None:
            return original(self, *args, **kwargs)
        return dispatch(Invocation(InvocationKind.CALL_SPECIAL, name, args, kwargs))

    forward.__name__ = name
    forward.__qualname__ = f"{target_type.__qualname__}__ScopedProxy.{name}"
    return forward


def _attribute_hooks(target_type: type[Any]) -> dict[str, Callable[..., Any]]:
    base_getattribute = target_type.__getattribute__
    base_setattr = target_type.__setattr__
    base_delattr = target_type.__delattr__
    base_getattr = getattr(target_type, "__getattr__", None)

    def __getattribute__(self: Any, name: str) -> Any:  # noqa: N807
        if name in _LOCAL_ATTRIBUTES:
            return object.__getattribute__(self, name)
        dispatch = read_dispatch(self)
        if dispatch is None:
            return base_getattribute(self, name)
        return dispatch(Invocation(InvocationKind.GET_ATTRIBUTE, name))

    def __setattr__(self: Any, name: str, value: Any) -> None:  # noqa: N807
        dispatch = read_dispatch(self)
        if dispatch is None or name in _LOCAL_ATTRIBUTES:
            base_setattr(self, name, value)
            return
        dispatch(Invocation(InvocationKind.SET_ATTRIBUTE, name, (value,)))

    def __delattr__(self: Any, name: str) -> None:  # noqa: N807
        dispatch = read_dispatch(self)
        if dispatch is None or name in _LOCAL_ATTRIBUTES:
            base_delattr(self, name)
            return
        dispatch(Invocation(InvocationKind.DELETE_ATTRIBUTE, name))

    hooks: dict[str, Callable[..., Any]] = {
        "__getattribute__": __getattribute__,
        "__setattr__": __setattr__,
        "__delattr__": __delattr__,
    }

    if base_getattr is not None:
        # Python falls back to __getattr__ when __getattribute__ raises; for an
        # attached proxy the target already handled the miss.
        def __getattr__(self: Any, name: str) -> Any:  # noqa: N807
            if read_dispatch(self) is None:
                return base_getattr(self, name)
            msg = (
                f"'{target_type.__qualname__}' scoped proxy target has no attribute '{name}'"
            )
            raise AttributeError(msg)

        hooks["__getattr__"] = __getattr__

    return hooks


class StandInRegistry:
    """Memoize one ``StandInDescriptor`` per target type.

    Lookups are lock-free after the first build; builds are serialized so
    concurrent first requests for the same type receive the same descriptor.
    """

    def __init__(self) -> None:
        self._descriptors: dict[type[Any], StandInDescriptor] = {}
        self._lock = threading.Lock()

    def descriptor_for(self, target_type: type[Any]) -> StandInDescriptor:
        """Return the stand-in descriptor for ``target_type``, building it once.

        Raises:
            ProxyWireInvalidProxyTargetError: If the target cannot be subclassed.

        """
        descriptor = self._descriptors.get(target_type)
        if descriptor is not None:
            return descriptor

        with self._lock:
            descriptor = self._descriptors.get(target_type)
            if descriptor is None:
                descriptor = build_stand_in(target_type)
                self._descriptors[target_type] = descriptor
        return descriptor

    def __contains__(self, target_type: object) -> bool:
        return target_type in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)


_registry = StandInRegistry()


def get_stand_in_registry() -> StandInRegistry:
    """Return the process-wide stand-in registry."""
    return _registry

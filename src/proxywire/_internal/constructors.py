from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

F = TypeVar("F", bound=Callable[..., Any])

_CONSTRUCTOR_MARKER = "__proxywire_constructor__"
_ACCESSIBLE = "accessible"
_INTERNAL = "internal"
_VARIADIC_KINDS = (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)


def constructor(func: F) -> F:
    """Mark a classmethod as an additional accessible constructor.

    Construction strategies treat every marked classmethod as a constructor
    next to ``__init__``. Apply it below ``@classmethod``.

    Examples:
        .. code-block:: python

            class Client:
                def __init__(self, url: str) -> None:
                    self.url = url

                @classmethod
                @constructor
                def from_env(cls) -> Client:
                    return cls(os.environ["URL"])

    """
    setattr(func, _CONSTRUCTOR_MARKER, _ACCESSIBLE)
    return func


def internal_constructor(func: F) -> F:
    """Hide ``__init__`` (or a marked classmethod) from construction strategies.

    A class whose only constructor is internal has no accessible constructor,
    which is what ``NULL_ARGUMENTS`` and ``REQUIRE_NO_ARG_CONSTRUCTOR`` check.
    """
    setattr(func, _CONSTRUCTOR_MARKER, _INTERNAL)
    return func


@dataclass(frozen=True, slots=True)
class ConstructorRef:
    """Describe one accessible way to build an instance of a class."""

    owner: type[Any]
    name: str
    parameters: tuple[inspect.Parameter, ...]

    @property
    def is_init(self) -> bool:
        return self.name == "__init__"

    @property
    def required_parameters(self) -> tuple[inspect.Parameter, ...]:
        return tuple(
            parameter
            for parameter in self.parameters
            if parameter.default is inspect.Parameter.empty
        )

    def describe(self) -> str:
        rendered = ", ".join(parameter.name for parameter in self.parameters)
        return f"{self.owner.__qualname__}.{self.name}({rendered})"

    def invoke(self, target_type: type[Any], arguments: dict[str, Any]) -> Any:
        """Build an instance of ``target_type`` through this constructor.

        Args:
            target_type: Class to instantiate, usually a subclass of ``owner``.
            arguments: Values keyed by parameter name.

        """
        positional = [
            arguments[parameter.name]
            for parameter in self.parameters
            if parameter.kind is inspect.Parameter.POSITIONAL_ONLY
        ]
        keyword = {
            parameter.name: arguments[parameter.name]
            for parameter in self.parameters
            if parameter.kind is not inspect.Parameter.POSITIONAL_ONLY
        }
        if self.is_init:
            return target_type(*positional, **keyword)
        return getattr(target_type, self.name)(*positional, **keyword)


def find_accessible_constructors(cls: type[Any]) -> list[ConstructorRef]:
    """Return every constructor of ``cls`` that construction strategies may call.

    The effective ``__init__`` counts unless it is marked with
    ``@internal_constructor``; ``object.__init__`` counts as the implicit
    no-argument constructor. Classmethods marked with ``@constructor`` anywhere
    on the MRO are added, the most derived definition winning.

    Args:
        cls: Class to inspect.

    """
    constructors: list[ConstructorRef] = []

    init = _find_init(cls)
    if init is not None:
        owner, init_function = init
        if getattr(init_function, _CONSTRUCTOR_MARKER, _ACCESSIBLE) != _INTERNAL:
            constructors.append(
                ConstructorRef(
                    owner=owner,
                    name="__init__",
                    parameters=_signature_parameters(init_function, skip_first=True),
                ),
            )

    seen: set[str] = {"__init__"}
    for klass in cls.__mro__:
        for name, value in vars(klass).items():
            if name in seen:
                continue
            seen.add(name)
            if not isinstance(value, classmethod):
                continue
            marker = getattr(value, _CONSTRUCTOR_MARKER, None) or getattr(
                value.__func__,
                _CONSTRUCTOR_MARKER,
                None,
            )
            if marker != _ACCESSIBLE:
                continue
            constructors.append(
                ConstructorRef(
                    owner=klass,
                    name=name,
                    parameters=_signature_parameters(value.__func__, skip_first=True),
                ),
            )

    return constructors


def _find_init(cls: type[Any]) -> tuple[type[Any], Any] | None:
    for klass in cls.__mro__:
        init_function = vars(klass).get("__init__")
        if init_function is not None:
            return klass, init_function
    return None


def _signature_parameters(func: Any, *, skip_first: bool) -> tuple[inspect.Parameter, ...]:
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        # Builtin slot wrappers such as object.__init__ take no declared parameters.
        return ()
    parameters = list(signature.parameters.values())
    if skip_first and parameters and parameters[0].kind is not inspect.Parameter.VAR_POSITIONAL:
        parameters = parameters[1:]
    return tuple(parameter for parameter in parameters if parameter.kind not in _VARIADIC_KINDS)

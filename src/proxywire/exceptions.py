from __future__ import annotations

from collections.abc import Iterable


class ProxyWireError(Exception):
    """Represent a base class for all proxywire-specific failures.

    Catch this type when you want to handle any proxywire error path without
    matching each concrete exception class individually.
    """


class ProxyWireInvalidRegistrationError(ProxyWireError):
    """Signal invalid registration configuration.

    Raised by registration APIs such as ``Container.add_concrete``,
    ``Container.add_factory`` and ``Container.add_provider`` when arguments are
    invalid, and by the scoped proxy builders when a binding request cannot be
    honored.
    """


class ProxyWireIllegalSingletonScopeError(ProxyWireInvalidRegistrationError):
    """Signal that a scoped proxy binding was declared as a singleton.

    A scoped proxy exists to re-resolve its target on every use. Binding the
    target with ``Lifetime.SINGLETON``, in the container root scope, or as an
    eager singleton would pin one value forever, so ``in_scope``,
    ``with_lifetime`` and ``as_eager_singleton`` raise this error immediately.

    Typical fix is binding the target in a narrower scope, for example
    ``.in_scope(Scope.REQUEST)``, or dropping the scoped proxy binding.
    """


class ProxyWireDependencyNotRegisteredError(ProxyWireError):
    """Signal that a dependency key has no binding.

    Raised by ``resolve`` and ``get_binding`` when strict mode is used
    (autoregistration disabled) or when the key cannot be autoregistered.
    """


class ProxyWireScopeMismatchError(ProxyWireError):
    """Signal scope transition or resolution at an invalid scope depth.

    Raised by ``enter_scope`` for invalid transitions and by ``resolve`` when a
    dependency requires a deeper scope than the active resolver.

    Typical fix is entering the required scope first, for example
    ``with container.enter_scope(Scope.REQUEST): ...``.
    """


class ProxyWireCircularDependencyError(ProxyWireError):
    """Signal that resolving a key required resolving the same key again.

    Typical fix is breaking the cycle, for example by injecting one side
    through a scoped proxy or a provider.
    """


class ProxyWireUninitializedProxyError(ProxyWireError):
    """Signal that a scoped proxy provider was used before the container wired it.

    ``ScopedProxyProvider.get`` only works after ``Container.compile`` supplied
    the container handle. Reaching it earlier is a programming-order bug and is
    never retried.
    """


class ProxyWireInvalidProxyTargetError(ProxyWireError):
    """Signal that a stand-in type cannot be generated for a target type.

    Targets must be runtime classes that can be subclassed. Classes marked with
    ``typing.final`` and built-in types that refuse subclassing are rejected.
    """


class ProxyWireConstructionError(ProxyWireError):
    """Represent a failure to instantiate a stand-in type.

    Construction errors are collected while the container finalizes its
    bindings and are reported together through
    ``ProxyWireConfigurationError``.
    """


class ProxyWireNoAccessibleConstructorError(ProxyWireConstructionError):
    """Signal that a construction strategy found no usable constructor."""


class ProxyWireAmbiguousConstructorError(ProxyWireConstructionError):
    """Signal that several accessible constructors exist and none was chosen."""


class ProxyWireConstructorInvocationError(ProxyWireConstructionError):
    """Signal that a constructor was found but failed while running.

    The original exception, if any, is available as ``__cause__``.
    """


class ProxyWireConfigurationError(ProxyWireError):
    """Signal that container finalization collected one or more errors.

    Raised once by ``Container.compile`` (and ``ProxyFactory.create``) with
    every collected error, so a single startup attempt surfaces all
    misconfigurations at once. The individual errors are kept in ``errors``.
    """

    def __init__(self, errors: Iterable[ProxyWireError]) -> None:
        self.errors: tuple[ProxyWireError, ...] = tuple(errors)
        super().__init__(self._format_message(self.errors))

    @staticmethod
    def _format_message(errors: tuple[ProxyWireError, ...]) -> str:
        noun = "error" if len(errors) == 1 else "errors"
        lines = [f"Unable to configure container, {len(errors)} {noun}:"]
        lines.extend(
            f"  {index}) {type(error).__name__}: {error}"
            for index, error in enumerate(errors, start=1)
        )
        return "\n".join(lines)

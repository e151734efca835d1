"""Errors: what a scoped proxy binding refuses to do.

A scoped proxy target must never be a singleton, and the proxy only exists
once the container has been compiled.
"""

from __future__ import annotations

from proxywire import (
    Container,
    Lifetime,
    ProxyWireIllegalSingletonScopeError,
    ProxyWireUninitializedProxyError,
    Scope,
    ScopedProxyBinder,
)


class ShoppingCart:
    def __init__(self) -> None:
        self.items: list[str] = []


def main() -> None:
    container = Container()
    builder = ScopedProxyBinder.using(container).bind(ShoppingCart)

    rejected: list[str] = []
    for attempt in (
        lambda: builder.in_scope(Scope.APP),
        lambda: builder.with_lifetime(Lifetime.SINGLETON),
        lambda: builder.as_eager_singleton(),
    ):
        try:
            attempt()
        except ProxyWireIllegalSingletonScopeError as error:
            rejected.append(type(error).__name__)
    print(f"rejected={len(rejected)} as {set(rejected)}")  # => rejected=3 as {'ProxyWireIllegalSingletonScopeError'}

    builder.in_scope(Scope.SESSION)
    provider = container.get_binding(ShoppingCart).provider
    try:
        provider.get()
    except ProxyWireUninitializedProxyError:
        print("get() before compile: uninitialized")  # => get() before compile: uninitialized

    container.compile()
    print(f"state={provider.state.name}")  # => state=INITIALIZED

    cart = container.resolve(ShoppingCart)
    with container.enter_scope(Scope.SESSION):
        cart.items.append("book")
        print(f"items={cart.items}")  # => items=['book']
    with container.enter_scope(Scope.SESSION):
        print(f"items={cart.items}")  # => items=[]


if __name__ == "__main__":
    main()

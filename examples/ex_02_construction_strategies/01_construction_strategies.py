"""Construction strategies: how the stand-in object itself is created.

The default strategy allocates the stand-in without running any constructor.
``NULL_ARGUMENTS`` calls the single accessible constructor with ``None`` for
every parameter, and ``REQUIRE_NO_ARG_CONSTRUCTOR`` only accepts classes with
a no-argument constructor. Construction problems are reported by ``compile``.
"""

from __future__ import annotations

from proxywire import (
    ConstructionStrategy,
    Container,
    ProxyWireConfigurationError,
    ScopedProxyBinder,
)


class Greeter:
    def __init__(self, greeting: str) -> None:
        self.greeting = greeting

    def greet(self, name: str) -> str:
        return f"{self.greeting}, {name}!"


def make_greeter() -> Greeter:
    return Greeter("Hello")


def bind_greeter(strategy: ConstructionStrategy) -> Container:
    container = Container()
    (
        ScopedProxyBinder.using(container)
        .with_construction_strategy(strategy)
        .bind(Greeter)
        .to_factory(make_greeter)
    )
    return container


def main() -> None:
    allocated = bind_greeter(ConstructionStrategy.ALLOCATE_WITHOUT_CONSTRUCTOR).resolve(Greeter)
    print(allocated.greet("Ada"))  # => Hello, Ada!
    print(f"allocated_state={vars(allocated)}")  # => allocated_state={}

    null_args = bind_greeter(ConstructionStrategy.NULL_ARGUMENTS).resolve(Greeter)
    print(null_args.greet("Grace"))  # => Hello, Grace!
    print(f"null_args_state={vars(null_args)}")  # => null_args_state={'greeting': None}

    strict = bind_greeter(ConstructionStrategy.REQUIRE_NO_ARG_CONSTRUCTOR)
    try:
        strict.compile()
    except ProxyWireConfigurationError as error:
        names = [type(item).__name__ for item in error.errors]
        print(f"errors={names}")  # => errors=['ProxyWireNoAccessibleConstructorError']


if __name__ == "__main__":
    main()

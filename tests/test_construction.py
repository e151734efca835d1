"""Tests for construction strategies and constructor discovery."""

import pytest

from proxywire import (
    ConstructionStrategy,
    ProxyWireAmbiguousConstructorError,
    ProxyWireConstructorInvocationError,
    ProxyWireNoAccessibleConstructorError,
    constructor,
    internal_constructor,
)
from proxywire._internal.allocation import InstanceAllocator, get_instance_allocator
from proxywire._internal.constructors import find_accessible_constructors
from proxywire._internal.errors import ErrorReport


class NeedsArguments:
    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port


class ExplodingInit:
    def __init__(self) -> None:
        msg = "boom"
        raise RuntimeError(msg)


class NoInit:
    pass


class OptionalArgument:
    def __init__(self, retries: int = 3) -> None:
        self.retries = retries


class HiddenInit:
    @internal_constructor
    def __init__(self) -> None:
        self.ready = True


class HiddenInitWithFactory:
    @internal_constructor
    def __init__(self, name: str) -> None:
        self.name = name

    @classmethod
    @constructor
    def create(cls, name: str) -> "HiddenInitWithFactory":
        return cls(name)


class TwoConstructors:
    def __init__(self, name: str) -> None:
        self.name = name

    @classmethod
    @constructor
    def default(cls) -> "TwoConstructors":
        return cls("default")


class WrongReturnType:
    @internal_constructor
    def __init__(self) -> None:
        pass

    @classmethod
    @constructor
    def create(cls) -> object:
        return object()


class Celsius(int):
    pass


class PositionalOnly:
    def __init__(self, value: object, /) -> None:
        self.value = value


class OverriddenFactory(TwoConstructors):
    def default(self) -> str:  # type: ignore[override]
        return "no longer a constructor"


class TestAllocateWithoutConstructor:
    def test_skips_init_with_required_arguments(self, errors: ErrorReport) -> None:
        instance = ConstructionStrategy.ALLOCATE_WITHOUT_CONSTRUCTOR.create_instance(
            NeedsArguments,
            errors,
        )

        assert isinstance(instance, NeedsArguments)
        assert not hasattr(instance, "host")
        assert not errors.has_errors()

    def test_skips_init_that_raises(self, errors: ErrorReport) -> None:
        instance = ConstructionStrategy.ALLOCATE_WITHOUT_CONSTRUCTOR.create_instance(
            ExplodingInit,
            errors,
        )

        assert isinstance(instance, ExplodingInit)
        assert len(errors) == 0

    def test_allocates_builtin_subclass_with_zero_value(self, errors: ErrorReport) -> None:
        instance = ConstructionStrategy.ALLOCATE_WITHOUT_CONSTRUCTOR.create_instance(
            Celsius,
            errors,
        )

        assert isinstance(instance, Celsius)
        assert instance == 0


class TestNullArguments:
    def test_passes_none_for_every_parameter(self, errors: ErrorReport) -> None:
        instance = ConstructionStrategy.NULL_ARGUMENTS.create_instance(NeedsArguments, errors)

        assert instance is not None
        assert instance.host is None
        assert instance.port is None

    def test_passes_positional_only_parameters_positionally(self, errors: ErrorReport) -> None:
        instance = ConstructionStrategy.NULL_ARGUMENTS.create_instance(PositionalOnly, errors)

        assert instance is not None
        assert instance.value is None

    def test_uses_marked_classmethod_when_init_is_internal(self, errors: ErrorReport) -> None:
        instance = ConstructionStrategy.NULL_ARGUMENTS.create_instance(
            HiddenInitWithFactory,
            errors,
        )

        assert isinstance(instance, HiddenInitWithFactory)
        assert instance.name is None

    def test_reports_no_accessible_constructor(self, errors: ErrorReport) -> None:
        instance = ConstructionStrategy.NULL_ARGUMENTS.create_instance(HiddenInit, errors)

        assert instance is None
        assert [type(error) for error in errors] == [ProxyWireNoAccessibleConstructorError]

    def test_reports_ambiguous_constructors(self, errors: ErrorReport) -> None:
        instance = ConstructionStrategy.NULL_ARGUMENTS.create_instance(TwoConstructors, errors)

        assert instance is None
        (error,) = errors
        assert isinstance(error, ProxyWireAmbiguousConstructorError)
        assert "2 accessible constructors" in str(error)

    def test_wraps_constructor_failure(self, errors: ErrorReport) -> None:
        instance = ConstructionStrategy.NULL_ARGUMENTS.create_instance(ExplodingInit, errors)

        assert instance is None
        (error,) = errors
        assert isinstance(error, ProxyWireConstructorInvocationError)
        assert isinstance(error.__cause__, RuntimeError)
        assert "boom" in str(error)


class TestRequireNoArgConstructor:
    def test_calls_implicit_object_init(self, errors: ErrorReport) -> None:
        instance = ConstructionStrategy.REQUIRE_NO_ARG_CONSTRUCTOR.create_instance(NoInit, errors)

        assert isinstance(instance, NoInit)

    def test_parameters_with_defaults_count_as_no_arg(self, errors: ErrorReport) -> None:
        instance = ConstructionStrategy.REQUIRE_NO_ARG_CONSTRUCTOR.create_instance(
            OptionalArgument,
            errors,
        )

        assert instance is not None
        assert instance.retries == 3

    def test_rejects_required_parameters(self, errors: ErrorReport) -> None:
        instance = ConstructionStrategy.REQUIRE_NO_ARG_CONSTRUCTOR.create_instance(
            NeedsArguments,
            errors,
        )

        assert instance is None
        (error,) = errors
        assert isinstance(error, ProxyWireNoAccessibleConstructorError)
        assert "NeedsArguments.__init__(host, port)" in str(error)

    def test_several_constructors_never_pick_one(self, errors: ErrorReport) -> None:
        instance = ConstructionStrategy.REQUIRE_NO_ARG_CONSTRUCTOR.create_instance(
            TwoConstructors,
            errors,
        )

        assert instance is None
        assert [type(error) for error in errors] == [ProxyWireNoAccessibleConstructorError]

    def test_internal_init_is_not_accessible(self, errors: ErrorReport) -> None:
        instance = ConstructionStrategy.REQUIRE_NO_ARG_CONSTRUCTOR.create_instance(
            HiddenInit,
            errors,
        )

        assert instance is None
        assert isinstance(next(iter(errors)), ProxyWireNoAccessibleConstructorError)

    def test_rejects_constructor_returning_other_type(self, errors: ErrorReport) -> None:
        instance = ConstructionStrategy.REQUIRE_NO_ARG_CONSTRUCTOR.create_instance(
            WrongReturnType,
            errors,
        )

        assert instance is None
        (error,) = errors
        assert isinstance(error, ProxyWireConstructorInvocationError)
        assert "returned object" in str(error)


class TestConstructorDiscovery:
    def test_object_init_is_the_implicit_constructor(self) -> None:
        (ref,) = find_accessible_constructors(NoInit)

        assert ref.is_init
        assert ref.owner is object
        assert ref.parameters == ()

    def test_init_is_inherited(self) -> None:
        class Child(NeedsArguments):
            pass

        (ref,) = find_accessible_constructors(Child)

        assert ref.owner is NeedsArguments
        assert [parameter.name for parameter in ref.parameters] == ["host", "port"]

    def test_plain_method_override_hides_base_constructor(self) -> None:
        (ref,) = find_accessible_constructors(OverriddenFactory)

        assert ref.is_init

    def test_marked_classmethods_are_collected(self) -> None:
        refs = find_accessible_constructors(TwoConstructors)

        assert [ref.name for ref in refs] == ["__init__", "default"]
        assert refs[1].describe() == "TwoConstructors.default()"


def test_allocator_caches_instantiator_per_class() -> None:
    allocator = InstanceAllocator()

    assert allocator.instantiator_of(NoInit) is allocator.instantiator_of(NoInit)
    assert isinstance(allocator.allocate(NoInit), NoInit)


def test_shared_allocator_is_created_once() -> None:
    assert get_instance_allocator() is get_instance_allocator()


def test_null_arguments_ignores_overridden_base_constructor(errors: ErrorReport) -> None:
    instance = ConstructionStrategy.NULL_ARGUMENTS.create_instance(OverriddenFactory, errors)

    assert isinstance(instance, OverriddenFactory)
    assert instance.name is None
    assert not errors.has_errors()

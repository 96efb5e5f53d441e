import unittest
from abc import ABC, abstractmethod
from typing import Protocol, runtime_checkable

import pytest

from flexbind import (
    Container,
    NoPublicConstructorError,
    NullSingletonInstanceError,
    RegistrationError,
    TypeMismatchError,
)


class TestTypeCompatibility(unittest.TestCase):
    cont: Container

    class Base: ...

    class Derived(Base): ...

    class Unrelated: ...

    def setUp(self):
        self.cont = Container()

    def test_register_subclass_succeeds(self):
        self.cont.register(self.Base, self.Derived)

        assert isinstance(self.cont.resolve(self.Base), self.Derived)

    def test_register_unrelated_class_raises(self):
        with pytest.raises(TypeMismatchError):
            self.cont.register(self.Base, self.Unrelated)

        assert not self.cont.is_registered(self.Base)

    def test_type_mismatch_is_a_type_error_and_registration_error(self):
        with pytest.raises(TypeError):
            self.cont.register_singleton(self.Base, self.Unrelated)

        with pytest.raises(RegistrationError):
            self.cont.register_scoped(self.Base, self.Unrelated)

    def test_register_non_class_implementation_raises(self):
        with pytest.raises(TypeMismatchError):
            self.cont.register(self.Base, self.Derived())  # type: ignore[arg-type]

    def test_register_abc_implementation(self):
        class Port(ABC):
            @abstractmethod
            def send(self) -> None: ...

        class Adapter(Port):
            def send(self) -> None:
                pass

        self.cont.register(Port, Adapter)

        assert isinstance(self.cont.resolve(Port), Adapter)

    def test_register_instance_of_wrong_type_raises(self):
        with pytest.raises(TypeMismatchError):
            self.cont.register_instance(self.Base, self.Unrelated())

    def test_register_none_instance_raises(self):
        with pytest.raises(NullSingletonInstanceError):
            self.cont.register_instance(self.Base, None)

        assert not self.cont.is_registered(self.Base)

    def test_factory_returning_wrong_type_raises_on_resolve(self):
        self.cont.register(self.Base, factory=lambda _: self.Unrelated())

        with pytest.raises(TypeMismatchError):
            self.cont.resolve(self.Base)


class TestRuntimeProtocolNonConformance(unittest.TestCase):
    cont: Container

    @runtime_checkable
    class RepoProtocol(Protocol):
        def get(self) -> int: ...

    class BadRepo:
        # Missing `get`, does not conform to RepoProtocol
        def other(self) -> str:
            return "nope"

    def setUp(self):
        self.cont = Container()

    def test_resolve_raises_type_mismatch_when_factory_returns_non_conforming_instance(self):
        self.cont.register(self.RepoProtocol, factory=lambda _: self.BadRepo())
        # factory path does not raise at register time, but fails at resolution.
        with pytest.raises(TypeMismatchError):
            self.cont.resolve(self.RepoProtocol)

    def test_register_instance_raises_for_non_conforming_instance(self):
        with pytest.raises(TypeMismatchError):
            self.cont.register_instance(self.RepoProtocol, self.BadRepo())

    def test_register_raises_for_non_conforming_class(self):
        with pytest.raises(TypeMismatchError):
            self.cont.register(self.RepoProtocol, self.BadRepo)


class TestRuntimeProtocolConformance(unittest.TestCase):
    cont: Container

    @runtime_checkable
    class RepoProtocol(Protocol):
        def get(self) -> int: ...

    class GoodRepo:
        def get(self) -> int:
            return 42

    def setUp(self):
        self.cont = Container()

    def test_resolve_succeeds_when_factory_returns_conforming_instance(self):
        self.cont.register(self.RepoProtocol, factory=lambda _: self.GoodRepo())

        repo = self.cont.resolve(self.RepoProtocol)

        assert isinstance(repo, self.GoodRepo)
        assert repo.get() == 42

    def test_register_instance_succeeds_for_conforming_instance(self):
        repo = self.GoodRepo()

        self.cont.register_instance(self.RepoProtocol, repo)
        resolved = self.cont.resolve(self.RepoProtocol)

        assert resolved is repo

    def test_register_succeeds_for_conforming_class(self):
        self.cont.register(self.RepoProtocol, self.GoodRepo)

        repo = self.cont.resolve(self.RepoProtocol)

        assert isinstance(repo, self.GoodRepo)
        assert repo.get() == 42


def test_register_proto_impl_with_less_args_raises():
    container = Container()

    class SupportsFoo(Protocol):
        def foo(self, a, b) -> int: ...

    class BadImpl:
        def foo(self, a) -> int: ...

    with pytest.raises(TypeMismatchError):
        container.register(SupportsFoo, BadImpl)


def test_register_proto_impl_with_more_args_does_not_raise():
    container = Container()

    class SupportsFoo(Protocol):
        def foo(self, a) -> int: ...

    class Impl:
        def foo(self, a, b) -> int: ...

    container.register(SupportsFoo, Impl)


def test_register_proto_impl_missing_member_func_raises():
    container = Container()

    class SupportsFoo(Protocol):
        def foo(self, a) -> int: ...
        def bar(self) -> int: ...

    class Impl:
        def foo(self, a, b) -> int: ...

    with pytest.raises(TypeMismatchError) as ctx:
        container.register(SupportsFoo, Impl)

    assert "bar" in str(ctx.value)


def test_register_proto_impl_incompatible_return_type_raises():
    container = Container()

    class SupportsFoo(Protocol):
        def foo(self) -> int: ...

    class Impl:
        def foo(self) -> str: ...

    with pytest.raises(TypeMismatchError):
        container.register(SupportsFoo, Impl)


def test_register_proto_nominal_subclass_is_accepted():
    container = Container()

    class SupportsFoo(Protocol):
        def foo(self) -> int: ...

    class Impl(SupportsFoo):
        def foo(self) -> int:
            return 1

    container.register(SupportsFoo, Impl)

    assert container.resolve(SupportsFoo).foo() == 1


def test_resolving_protocol_registered_to_itself_has_no_usable_constructor():
    container = Container()

    class SupportsFoo(Protocol):
        def foo(self) -> int: ...

    container.register(SupportsFoo, SupportsFoo)

    with pytest.raises(NoPublicConstructorError):
        container.resolve(SupportsFoo)

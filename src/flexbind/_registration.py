from __future__ import annotations

import inspect
import logging
import threading
import typing
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, cast, get_type_hints

from ._exceptions import (
    AlreadyRegisteredError,
    ConstructionFailedError,
    NoActiveScopeError,
    TypeMismatchError,
)
from ._keys import _type_name


if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from ._container import Container
    from ._keys import InjectionKey


logger = logging.getLogger(__name__)


class Lifetime(Enum):
    TRANSIENT = "transient"
    SCOPED = "scoped"
    SINGLETON = "singleton"


_UNSET: Any = object()


class Registration:
    """Binds a service type to an implementation class, a factory or a pre-built instance.

    Owns the singleton slot: ``get_instance`` fills it at most once, under a
    per-registration lock, and reads it without locking afterwards.
    """

    def __init__(
        self,
        service_type: Any,
        implementation: type | None = None,
        lifetime: Lifetime = Lifetime.TRANSIENT,
        factory: Callable[[Container], Any] | None = None,
    ) -> None:
        self.service_type = service_type
        self.implementation = implementation
        self.lifetime = lifetime
        self.factory = factory
        self._instance: Any = _UNSET
        self._lock = threading.Lock()

    @classmethod
    def for_instance(cls, service_type: Any, instance: object) -> Registration:
        reg = cls(service_type, type(instance), Lifetime.SINGLETON)
        reg._instance = instance  # noqa: SLF001
        return reg

    @property
    def has_instance(self) -> bool:
        return self._instance is not _UNSET

    @property
    def instance(self) -> Any:
        """The cached singleton, or ``None`` when not created yet."""
        return None if self._instance is _UNSET else self._instance

    def get_instance(self, container: Container, key: InjectionKey) -> Any:
        if self.lifetime is Lifetime.SINGLETON:
            instance = self._instance
            if instance is _UNSET:
                with self._lock:
                    if self._instance is _UNSET:
                        self._instance = self._create(container)
                        logger.debug("Created singleton %s", key)
                    instance = self._instance
            return instance

        if self.lifetime is Lifetime.SCOPED:
            scope = container.current_scope
            if scope is None:
                raise NoActiveScopeError(key)
            return scope.get_or_create(key, lambda: self._create(container))

        return self._create(container)

    def _create(self, container: Container) -> Any:
        if self.factory is None:
            return container.create_instance(cast("type", self.implementation))

        instance = self.factory(container)
        if instance is None:
            msg = "factory returned None"
            raise ConstructionFailedError(self.service_type, msg)
        validate_instance(self.service_type, instance)
        return instance

    def __repr__(self) -> str:
        target = self.factory if self.factory is not None else self.implementation
        return f"Registration({_type_name(self.service_type)} -> {target!r}, {self.lifetime.value})"


class Registry:
    """Write-once mapping of ``InjectionKey`` to ``Registration``."""

    def __init__(self) -> None:
        self._registrations: dict[InjectionKey, Registration] = {}
        self._lock = threading.Lock()

    def add(self, key: InjectionKey, registration: Registration) -> None:
        with self._lock:
            if key in self._registrations:
                raise AlreadyRegisteredError(key)
            self._registrations[key] = registration

    def get(self, key: InjectionKey) -> Registration | None:
        return self._registrations.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._registrations

    def __len__(self) -> int:
        return len(self._registrations)

    def __iter__(self) -> Iterator[tuple[InjectionKey, Registration]]:
        with self._lock:
            items = list(self._registrations.items())
        return iter(items)


def validate_implementation(service_type: Any, impl: Any) -> None:
    """Check that ``impl`` can stand in for ``service_type``.

    - plain classes and ABCs: ``issubclass`` is required.
    - protocols: nominal conformance (protocol in the MRO) or structural
      conformance (members, positional arity, return annotations).

    Non-type tokens (like strings) cannot be validated and are accepted.
    """
    if not inspect.isclass(service_type):
        return

    if not inspect.isclass(impl):
        msg = f"Implementation {impl!r} for {_type_name(service_type)} must be a class"
        raise TypeMismatchError(msg)

    if not _is_protocol(service_type):
        if not issubclass(impl, service_type):
            msg = f"Implementation {impl.__name__} must be a subclass of {service_type.__name__}"
            raise TypeMismatchError(msg)
        return

    if service_type in impl.__mro__:
        return

    problems = _structural_mismatches(service_type, impl)
    if problems:
        msg = (
            f"Implementation {impl.__name__} does not structurally conform to protocol "
            f"{service_type.__name__}: {'; '.join(problems)}"
        )
        raise TypeMismatchError(msg)


def validate_instance(service_type: Any, instance: object) -> None:
    if not inspect.isclass(service_type):
        return

    if _is_protocol(service_type):
        validate_implementation(service_type, type(instance))
        return

    if not isinstance(instance, service_type):
        msg = f"Instance of {type(instance).__name__} is not an instance of {service_type.__name__}"
        raise TypeMismatchError(msg)


def _structural_mismatches(proto_cls: type, impl: type) -> list[str]:
    problems: list[str] = []

    try:
        proto_hints = get_type_hints(proto_cls)
    except (NameError, TypeError):
        proto_hints = {}

    missing = [name for name in proto_hints if not name.startswith("_") and not hasattr(impl, name)]

    for name, proto_attr in proto_cls.__dict__.items():
        if name.startswith("_") or not inspect.isfunction(proto_attr):
            continue

        impl_attr = getattr(impl, name, _UNSET)
        if impl_attr is _UNSET:
            missing.append(name)
            continue
        if not callable(impl_attr):
            problems.append(f"{name}: not callable on {impl.__name__}")
            continue

        try:
            proto_sig = inspect.signature(proto_attr)
            impl_sig = inspect.signature(impl_attr)
        except (TypeError, ValueError) as e:
            problems.append(f"{name}: unable to compare signatures ({e})")
            continue

        # impl_attr is looked up on the class, so both signatures still carry `self`
        if _positional_arity(impl_sig) < _positional_arity(proto_sig):
            problems.append(f"{name}: fewer required positional parameters than the protocol")

        proto_ret = proto_sig.return_annotation
        impl_ret = impl_sig.return_annotation
        if (
            proto_ret is not inspect.Signature.empty
            and impl_ret is not inspect.Signature.empty
            and Any not in (proto_ret, impl_ret)
            and not _is_return_type_compatible(impl_ret, proto_ret)
        ):
            problems.append(f"{name}: return type {impl_ret!r} is not compatible with {proto_ret!r}")

    if missing:
        problems.insert(0, f"missing members: {', '.join(missing)}")
    return problems


def _positional_arity(sig: inspect.Signature) -> int:
    return sum(
        1
        for p in sig.parameters.values()
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD) and p.default is p.empty
    )


def _is_return_type_compatible(impl_ret: object, proto_ret: object) -> bool:
    if impl_ret == proto_ret:
        return True

    if isinstance(impl_ret, type) and isinstance(proto_ret, type):
        return issubclass(impl_ret, proto_ret)

    # Union, TypeVar and string annotations are not compared
    return isinstance(impl_ret, str) or isinstance(proto_ret, str)


if hasattr(typing, "is_protocol"):

    def _is_protocol(tp: type) -> bool:
        return inspect.isclass(tp) and typing.is_protocol(tp)

else:

    def _is_protocol(tp: type) -> bool:
        return inspect.isclass(tp) and bool(getattr(tp, "_is_protocol", False)) and tp is not Protocol

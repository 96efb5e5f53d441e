from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ._keys import _type_name


if TYPE_CHECKING:
    from collections.abc import Sequence

    from ._keys import InjectionKey


class FlexBindError(Exception):
    """Base class for every error raised by the container.

    Catch this type to handle any registration, resolution or disposal
    failure without matching each concrete class.
    """


class RegistrationError(FlexBindError):
    """Invalid registration."""


class AlreadyRegisteredError(RegistrationError):
    """A registration already exists for the key (regardless of lifetime)."""

    def __init__(self, key: InjectionKey) -> None:
        self.key = key
        super().__init__(f"{key} is already registered.")


class TypeMismatchError(RegistrationError, TypeError):
    """The implementation does not satisfy the declared service type.

    Raised at registration for implementation classes and pre-built
    instances, and at resolution when a factory returns a foreign object.
    """


class NullSingletonInstanceError(RegistrationError, ValueError):
    """``None`` was supplied as a pre-built singleton instance."""

    def __init__(self, key: InjectionKey) -> None:
        self.key = key
        super().__init__(f"Cannot register None as the singleton instance of {key}.")


class ResolutionError(FlexBindError, RuntimeError):
    """Base class for failures raised by ``Container.resolve``."""


class UnregisteredServiceError(ResolutionError):
    """No policy answered and no registration exists for the key."""

    def __init__(self, key: InjectionKey) -> None:
        self.key = key
        super().__init__(f"{key} is not registered.")


class CircularDependencyError(ResolutionError):
    """The requested service is already being resolved on this call chain."""

    def __init__(self, chain: Sequence[Any]) -> None:
        self.chain = tuple(chain)
        path = " -> ".join(_type_name(tp) for tp in self.chain)
        super().__init__(f"Circular dependency detected: {path}")


class NoActiveScopeError(ResolutionError):
    """A scoped service was requested while no scope is open."""

    def __init__(self, key: InjectionKey) -> None:
        self.key = key
        super().__init__(f"Attempted to resolve scoped {key} without an active scope.")


class NoPublicConstructorError(ResolutionError):
    """The implementation cannot be instantiated (abstract, protocol or not a class)."""

    def __init__(self, implementation: Any, reason: str = "") -> None:
        self.implementation = implementation
        msg = f"No usable constructor found for {_type_name(implementation)}"
        super().__init__(f"{msg}: {reason}" if reason else msg)


class ConstructionFailedError(ResolutionError):
    """Instantiation failed for any other reason; the cause is chained."""

    def __init__(self, implementation: Any, reason: str) -> None:
        self.implementation = implementation
        super().__init__(f"Failed to create an instance of {_type_name(implementation)}: {reason}")


class DisposalError(FlexBindError):
    """One or more ``dispose()`` hooks failed while tearing down."""

    def __init__(self, errors: Sequence[BaseException]) -> None:
        self.errors = list(errors)
        super().__init__(f"{len(self.errors)} instance(s) failed to dispose: {self.errors[0]!r}")

"""Inversion-of-control container with scoped lifetimes.

This package maps service types, optionally qualified by a name and a tag,
to implementation classes, factories or pre-built instances, and builds
object graphs on demand through constructor and member injection.

Exports:
- `Container`: registration, resolution, policies, scopes and disposal.
- `Lifetime`: transient, scoped or singleton.
- `ServiceCollection`: deferred builder producing a `Container`.
- `Inject` / `inject_property`: mark fields and properties for member injection.
- `Initializable` / `Disposable`: lifecycle hooks called by the container.
"""

from ._collection import ServiceCollection, ServiceDescriptor
from ._container import Container, ResolutionPolicy
from ._exceptions import (
    AlreadyRegisteredError,
    CircularDependencyError,
    ConstructionFailedError,
    DisposalError,
    FlexBindError,
    NoActiveScopeError,
    NoPublicConstructorError,
    NullSingletonInstanceError,
    RegistrationError,
    ResolutionError,
    TypeMismatchError,
    UnregisteredServiceError,
)
from ._keys import InjectionKey
from ._members import (
    Disposable,
    Initializable,
    Inject,
    InjectionPoint,
    discover_injection_points,
    inject_property,
)
from ._registration import Lifetime, Registration
from ._scope import Scope, ScopeHandle


__all__ = [
    "AlreadyRegisteredError",
    "CircularDependencyError",
    "ConstructionFailedError",
    "Container",
    "Disposable",
    "DisposalError",
    "FlexBindError",
    "Initializable",
    "Inject",
    "InjectionKey",
    "InjectionPoint",
    "Lifetime",
    "NoActiveScopeError",
    "NoPublicConstructorError",
    "NullSingletonInstanceError",
    "Registration",
    "RegistrationError",
    "ResolutionError",
    "ResolutionPolicy",
    "Scope",
    "ScopeHandle",
    "ServiceCollection",
    "ServiceDescriptor",
    "TypeMismatchError",
    "UnregisteredServiceError",
    "discover_injection_points",
    "inject_property",
]

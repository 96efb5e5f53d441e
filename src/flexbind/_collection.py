from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ._container import Container
from ._exceptions import AlreadyRegisteredError
from ._keys import InjectionKey
from ._registration import Lifetime


if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator

    from ._container import ResolutionPolicy
    from ._members import InjectionPoint


logger = logging.getLogger(__name__)

_NO_INSTANCE: Any = object()


@dataclass(frozen=True)
class ServiceDescriptor:
    """A deferred registration, replayed onto a ``Container`` by ``ServiceCollection.build``."""

    service_type: Any
    implementation: type | None = None
    lifetime: Lifetime = Lifetime.TRANSIENT
    name: str | None = None
    tag: str | None = None
    factory: Callable[[Container], Any] | None = None
    instance: Any = _NO_INSTANCE

    @property
    def key(self) -> InjectionKey:
        return InjectionKey(self.service_type, self.name, self.tag)

    def apply(self, container: Container) -> None:
        if self.instance is not _NO_INSTANCE:
            container.register_instance(self.service_type, self.instance, name=self.name, tag=self.tag)
            return

        container.register(
            self.service_type,
            self.implementation,
            factory=self.factory,
            name=self.name,
            tag=self.tag,
            lifetime=self.lifetime,
        )


class ServiceCollection:
    """Collects registrations and policies, then builds a ``Container`` from them.

    Example:
      container = (
          ServiceCollection()
          .add_singleton(Clock, SystemClock)
          .add_scoped(UnitOfWork, SqlUnitOfWork)
          .add_transient(Handler, Handler, name="orders")
          .build()
      )

    Duplicate keys are rejected as they are added; type compatibility is
    checked when ``build`` replays the descriptors.
    """

    def __init__(self) -> None:
        self._descriptors: list[ServiceDescriptor] = []
        self._keys: set[InjectionKey] = set()
        self._policies: list[ResolutionPolicy] = []

    def add(self, descriptor: ServiceDescriptor) -> ServiceCollection:
        key = descriptor.key
        if key in self._keys:
            raise AlreadyRegisteredError(key)

        self._keys.add(key)
        self._descriptors.append(descriptor)
        return self

    def add_transient(
        self, service_type: Any, implementation: type, *, name: str | None = None, tag: str | None = None
    ) -> ServiceCollection:
        return self.add(ServiceDescriptor(service_type, implementation, Lifetime.TRANSIENT, name, tag))

    def add_scoped(
        self, service_type: Any, implementation: type, *, name: str | None = None, tag: str | None = None
    ) -> ServiceCollection:
        return self.add(ServiceDescriptor(service_type, implementation, Lifetime.SCOPED, name, tag))

    def add_singleton(
        self, service_type: Any, implementation: type, *, name: str | None = None, tag: str | None = None
    ) -> ServiceCollection:
        return self.add(ServiceDescriptor(service_type, implementation, Lifetime.SINGLETON, name, tag))

    def add_factory(
        self,
        service_type: Any,
        factory: Callable[[Container], Any],
        *,
        lifetime: Lifetime = Lifetime.TRANSIENT,
        name: str | None = None,
        tag: str | None = None,
    ) -> ServiceCollection:
        return self.add(ServiceDescriptor(service_type, None, lifetime, name, tag, factory=factory))

    def add_instance(
        self, service_type: Any, instance: object, *, name: str | None = None, tag: str | None = None
    ) -> ServiceCollection:
        return self.add(ServiceDescriptor(service_type, None, Lifetime.SINGLETON, name, tag, instance=instance))

    def add_policy(self, policy: ResolutionPolicy) -> ServiceCollection:
        self._policies.append(policy)
        return self

    def build(
        self,
        *,
        member_discovery: Callable[[type], Iterable[InjectionPoint]] | None = None,
    ) -> Container:
        container = Container() if member_discovery is None else Container(member_discovery=member_discovery)

        for descriptor in self._descriptors:
            descriptor.apply(container)

        for policy in self._policies:
            container.add_policy(policy)

        logger.debug(
            "Built container with %d registration(s) and %d policy(ies)",
            len(self._descriptors),
            len(self._policies),
        )
        return container

    def __len__(self) -> int:
        return len(self._descriptors)

    def __iter__(self) -> Iterator[ServiceDescriptor]:
        return iter(self._descriptors)

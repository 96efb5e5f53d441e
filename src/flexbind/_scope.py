from __future__ import annotations

import logging
from itertools import count
from typing import TYPE_CHECKING, Any, TypeVar, overload

from ._exceptions import DisposalError, NoActiveScopeError
from ._members import Disposable


if TYPE_CHECKING:
    from collections.abc import Callable, Collection, Iterable
    from types import TracebackType

    from ._container import Container
    from ._keys import InjectionKey

    T = TypeVar("T")


logger = logging.getLogger(__name__)

_scope_ids = count(1)


class Scope:
    """Cache of scoped instances for one unit of work.

    ``parent`` is the scope that was current when this one was opened; it is
    restored on close but never consulted for lookups.
    """

    def __init__(self, parent: Scope | None = None) -> None:
        self.parent = parent
        self.id = next(_scope_ids)
        self._instances: dict[InjectionKey, Any] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def depth(self) -> int:
        return 0 if self.parent is None else self.parent.depth + 1

    def get_or_create(self, key: InjectionKey, factory: Callable[[], T]) -> T:
        if self._closed:
            raise NoActiveScopeError(key)

        try:
            return self._instances[key]
        except KeyError:
            pass

        instance = factory()
        self._instances[key] = instance
        return instance

    def __contains__(self, key: object) -> bool:
        return key in self._instances

    def __len__(self) -> int:
        return len(self._instances)

    def dispose(self, *, skip: Collection[int] = ()) -> None:
        """Dispose every cached disposable instance once, newest first, and drain the cache.

        ``skip`` holds ids of instances owned elsewhere (singletons).
        """
        if self._closed:
            return
        self._closed = True

        instances = list(reversed(self._instances.values()))
        self._instances.clear()
        logger.debug("Closing scope #%d (%d cached instance(s))", self.id, len(instances))

        errors = dispose_instances(instances, skip=skip)
        if errors:
            raise DisposalError(errors)

    def __repr__(self) -> str:
        return f"Scope(#{self.id}, depth={self.depth}, instances={len(self._instances)}, closed={self._closed})"


class ScopeHandle:
    """Returned by ``Container.open_scope()``.

    Usable as a context manager; closing it disposes the scope's instances
    and makes the parent scope current again.
    """

    def __init__(self, container: Container, scope: Scope) -> None:
        self._container = container
        self._scope = scope

    @property
    def container(self) -> Container:
        return self._container

    @property
    def scope(self) -> Scope:
        return self._scope

    @property
    def closed(self) -> bool:
        return self._scope.closed

    @overload
    def resolve(self, service_type: type[T], name: str | None = ..., tag: str | None = ...) -> T: ...

    @overload
    def resolve(self, service_type: Any, name: str | None = ..., tag: str | None = ...) -> Any: ...

    def resolve(self, service_type: Any, name: str | None = None, tag: str | None = None) -> Any:
        """Resolve with this scope as the current one, whatever scope the caller is in."""
        return self._container._resolve_in_scope(self._scope, service_type, name, tag)  # noqa: SLF001

    def close(self) -> None:
        self._container._close_scope(self._scope)  # noqa: SLF001

    dispose = close

    def __enter__(self) -> ScopeHandle:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def dispose_instances(instances: Iterable[object], *, skip: Collection[int] = ()) -> list[Exception]:
    """Call ``dispose()`` on each disposable instance at most once.

    Instances are deduplicated by identity. A failing hook is logged and
    collected; the remaining instances are still disposed.
    """
    seen: set[int] = set(skip)
    errors: list[Exception] = []

    for instance in instances:
        if id(instance) in seen or not isinstance(instance, Disposable):
            continue
        seen.add(id(instance))

        try:
            instance.dispose()
        except Exception as exc:
            logger.exception("Failed to dispose %s", type(instance).__qualname__)
            errors.append(exc)

    return errors

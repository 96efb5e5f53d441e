"""Injectable members and the lifecycle capabilities the container looks for.

Field injection::

    class Handler:
        repo: Repository = Inject()
        audit = Inject(AuditLog, name="primary")

Property injection (only properties with a setter are injected)::

    class Handler:
        @property
        @inject_property(tag="fast")
        def cache(self) -> Cache:
            return self._cache

        @cache.setter
        def cache(self, value: Cache) -> None:
            self._cache = value
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, NamedTuple, Protocol, TypeVar, get_type_hints, runtime_checkable

from ._exceptions import ConstructionFailedError


if TYPE_CHECKING:
    from collections.abc import Callable


logger = logging.getLogger(__name__)

F = TypeVar("F", bound="Callable[..., Any]")

_PROPERTY_MARKER = "__flexbind_inject__"


@runtime_checkable
class Initializable(Protocol):
    """Instances get ``initialize()`` called once, after all injection completed."""

    def initialize(self) -> None: ...


@runtime_checkable
class Disposable(Protocol):
    """Instances get ``dispose()`` called when their owning scope or container is torn down."""

    def dispose(self) -> None: ...


class InjectionPoint(NamedTuple):
    attribute: str
    service_type: Any
    name: str | None = None
    tag: str | None = None
    writable: bool = True


class Inject:
    """Marks a class attribute as a field to be injected after construction.

    The service type is taken from the marker, or from the attribute's
    annotation when omitted.
    """

    __slots__ = ("attribute", "name", "service_type", "tag")

    def __init__(self, service_type: Any = None, *, name: str | None = None, tag: str | None = None) -> None:
        self.service_type = service_type
        self.name = name
        self.tag = tag
        self.attribute: str | None = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.attribute = name

    def __get__(self, obj: object | None, owner: type | None = None) -> Any:
        if obj is None:
            return self
        owner_name = owner.__name__ if owner is not None else type(obj).__name__
        msg = f"{owner_name}.{self.attribute} has not been injected; resolve {owner_name} through a Container."
        raise AttributeError(msg)

    def __repr__(self) -> str:
        return f"Inject({self.service_type!r}, name={self.name!r}, tag={self.tag!r})"


class _PropertyMarker(NamedTuple):
    service_type: Any
    name: str | None
    tag: str | None


def inject_property(service_type: Any = None, *, name: str | None = None, tag: str | None = None) -> Callable[[F], F]:
    """Mark a property getter as an injection point.

    Apply below ``@property``. The service type defaults to the getter's
    return annotation.
    """

    def decorator(fget: F) -> F:
        setattr(fget, _PROPERTY_MARKER, _PropertyMarker(service_type, name, tag))
        return fget

    return decorator


def discover_injection_points(cls: type) -> list[InjectionPoint]:
    """Enumerate injectable members of ``cls``, inherited ones included.

    Walks the MRO from ``object`` down so subclass declarations replace base
    ones; an attribute redefined without a marker stops being injectable.
    """
    points: dict[str, InjectionPoint] = {}

    for klass in reversed(cls.__mro__):
        if klass is object:
            continue

        hints: dict[str, Any] | None = None
        for attr, value in vars(klass).items():
            if isinstance(value, Inject):
                service_type = value.service_type
                if service_type is None:
                    if hints is None:
                        hints = _get_hints(klass)
                    service_type = hints.get(attr)
                points[attr] = _point(cls, attr, service_type, value.name, value.tag, writable=True)
            elif isinstance(value, property) and hasattr(value.fget, _PROPERTY_MARKER):
                marker: _PropertyMarker = getattr(value.fget, _PROPERTY_MARKER)
                service_type = marker.service_type
                if service_type is None:
                    service_type = _get_hints(value.fget).get("return")
                points[attr] = _point(cls, attr, service_type, marker.name, marker.tag, writable=value.fset is not None)
            else:
                points.pop(attr, None)

    return list(points.values())


def _point(
    cls: type,
    attr: str,
    service_type: Any,
    name: str | None,
    tag: str | None,
    *,
    writable: bool,
) -> InjectionPoint:
    if service_type is None:
        msg = f"injectable member '{attr}' declares no service type"
        raise ConstructionFailedError(cls, msg)
    return InjectionPoint(attr, service_type, name, tag, writable)


def _get_hints(obj: Any) -> dict[str, Any]:
    try:
        return get_type_hints(obj)
    except TypeError:
        return {}
    except NameError as exc:
        logger.warning("'%s' name error retrieving %s type hints", exc.name, getattr(obj, "__qualname__", obj))
        return {}

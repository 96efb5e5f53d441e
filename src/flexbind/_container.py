from __future__ import annotations

import inspect
import logging
import threading
import types
from contextvars import ContextVar
from typing import (
    TYPE_CHECKING,
    Any,
    Protocol,
    TypeVar,
    Union,
    get_args,
    get_origin,
    get_type_hints,
    overload,
)

from ._exceptions import (
    CircularDependencyError,
    ConstructionFailedError,
    DisposalError,
    FlexBindError,
    NoPublicConstructorError,
    NullSingletonInstanceError,
    UnregisteredServiceError,
)
from ._keys import InjectionKey
from ._members import Initializable, discover_injection_points
from ._registration import (
    Lifetime,
    Registration,
    Registry,
    _is_protocol,
    validate_implementation,
    validate_instance,
)
from ._scope import Scope, ScopeHandle, dispose_instances


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from types import TracebackType

    from ._members import InjectionPoint

    T = TypeVar("T")

    Token = type[T] | str


class ResolutionPolicy(Protocol):
    """Consulted before the registry; returning ``None`` passes to the next policy.

    Policies run on every resolution of every key and are never cached, so
    they must tolerate repeated calls.
    """

    def __call__(self, container: Container, service_type: Any, name: str | None, tag: str | None) -> Any: ...


class Container:
    """Inversion-of-control container.

    - register classes, factories or pre-built instances under
      ``(service type, name, tag)`` keys
    - resolve with constructor and member injection
    - lifetimes: transient / scoped / singleton
    - nested scopes and resolution policies.

    The resolve stack and the current scope live in context variables, so
    every thread and every asyncio task sees its own.
    """

    def __init__(
        self,
        *,
        member_discovery: Callable[[type], Iterable[InjectionPoint]] = discover_injection_points,
    ) -> None:
        self._registry = Registry()
        self._policies: list[ResolutionPolicy] = []
        self._member_discovery = member_discovery
        self._resolve_stack: ContextVar[tuple[Any, ...]] = ContextVar(
            f"flexbind_resolve_stack_{id(self):x}",
            default=(),
        )
        self._current_scope: ContextVar[Scope | None] = ContextVar(
            f"flexbind_current_scope_{id(self):x}",
            default=None,
        )
        self._disposed = False
        self._dispose_lock = threading.Lock()

    # registration

    @overload
    def register(
        self,
        service_type: type[T],
        impl: type[T],
        *,
        factory: None = ...,
        name: str | None = ...,
        tag: str | None = ...,
        lifetime: Lifetime = ...,
    ) -> None: ...

    @overload
    def register(
        self,
        service_type: type[T],
        impl: None = ...,
        *,
        factory: Callable[[Container], T],
        name: str | None = ...,
        tag: str | None = ...,
        lifetime: Lifetime = ...,
    ) -> None: ...

    @overload
    def register(
        self,
        service_type: str,
        impl: type | None = ...,
        *,
        factory: Callable[[Container], Any] | None = ...,
        name: str | None = ...,
        tag: str | None = ...,
        lifetime: Lifetime = ...,
    ) -> None: ...

    def register(
        self,
        service_type: Token[T],
        impl: type | None = None,
        *,
        factory: Callable[[Container], Any] | None = None,
        name: str | None = None,
        tag: str | None = None,
        lifetime: Lifetime = Lifetime.TRANSIENT,
    ) -> None:
        """Register an implementation class or a factory for a key.

        Example:
          container.register(IRepo, SqlRepo, lifetime=Lifetime.SCOPED)
          container.register(IRepo, SqlRepo, name="replica", tag="ro")
          container.register(Settings, factory=load_settings, lifetime=Lifetime.SINGLETON)

        """
        if impl is not None and factory is not None:
            msg = "Provide either `impl` or `factory`, not both."
            raise ValueError(msg)

        if impl is None and factory is None:
            msg = "Either `impl` or `factory` must be provided."
            raise ValueError(msg)

        if impl is not None:
            validate_implementation(service_type, impl)

        lifetime = Lifetime(lifetime)
        key = InjectionKey(service_type, name, tag)
        self._registry.add(key, Registration(service_type, impl, lifetime, factory))
        logger.debug("Registered %s -> %r (%s)", key, impl if impl is not None else factory, lifetime.value)

    def register_transient(self, service_type: Any, impl: type | None = None, **kwargs: Any) -> None:
        self.register(service_type, impl, lifetime=Lifetime.TRANSIENT, **kwargs)

    def register_scoped(self, service_type: Any, impl: type | None = None, **kwargs: Any) -> None:
        self.register(service_type, impl, lifetime=Lifetime.SCOPED, **kwargs)

    def register_singleton(self, service_type: Any, impl: type | None = None, **kwargs: Any) -> None:
        self.register(service_type, impl, lifetime=Lifetime.SINGLETON, **kwargs)

    def register_instance(
        self,
        service_type: Token[T],
        instance: object,
        *,
        name: str | None = None,
        tag: str | None = None,
    ) -> None:
        """Register a pre-built instance (always singleton)."""
        key = InjectionKey(service_type, name, tag)
        if instance is None:
            raise NullSingletonInstanceError(key)

        validate_instance(service_type, instance)
        self._registry.add(key, Registration.for_instance(service_type, instance))
        logger.debug("Registered instance %s -> %s", key, type(instance).__qualname__)

    def is_registered(self, service_type: Any, name: str | None = None, tag: str | None = None) -> bool:
        return InjectionKey(service_type, name, tag) in self._registry

    def add_policy(self, policy: ResolutionPolicy) -> None:
        self._policies.append(policy)

    # resolution

    @overload
    def resolve(self, service_type: type[T], name: str | None = ..., tag: str | None = ...) -> T: ...

    @overload
    def resolve(self, service_type: str, name: str | None = ..., tag: str | None = ...) -> object: ...

    def resolve(self, service_type: Token[T], name: str | None = None, tag: str | None = None) -> object:
        """Resolve the key to an instance.

        - Policies are asked first, in the order they were added.
        - Otherwise the registration for ``(service_type, name, tag)`` provides
          the instance according to its lifetime.
        """
        key = InjectionKey(service_type, name, tag)

        stack = self._resolve_stack.get()
        if service_type in stack:
            raise CircularDependencyError((*stack[stack.index(service_type) :], service_type))

        token = self._resolve_stack.set((*stack, service_type))
        try:
            for policy in self._policies:
                result = policy(self, service_type, name, tag)
                if result is not None:
                    return result

            reg = self._registry.get(key)
            if reg is None:
                raise UnregisteredServiceError(key)

            return reg.get_instance(self, key)
        finally:
            self._resolve_stack.reset(token)

    def create_instance(self, implementation: type[T]) -> T:
        """Build ``implementation`` with constructor and member injection, then initialize it."""
        args, kwargs = self._constructor_arguments(implementation)

        try:
            instance = implementation(*args, **kwargs)
        except FlexBindError:
            raise
        except Exception as exc:
            raise ConstructionFailedError(implementation, f"{type(exc).__name__}: {exc}") from exc

        self._inject_members(instance, implementation)

        if isinstance(instance, Initializable):
            try:
                instance.initialize()
            except FlexBindError:
                raise
            except Exception as exc:
                raise ConstructionFailedError(implementation, f"initialize() failed: {exc}") from exc

        return instance

    def _constructor_arguments(self, implementation: type) -> tuple[list[Any], dict[str, Any]]:
        init = _find_constructor(implementation)
        if init is object.__init__:
            return [], {}

        try:
            sig = inspect.signature(init)
        except (TypeError, ValueError) as exc:
            raise NoPublicConstructorError(implementation, str(exc)) from exc

        hints = _get_init_type_hints(implementation, init)
        args: list[Any] = []
        kwargs: dict[str, Any] = {}

        # drop `self`
        for p in list(sig.parameters.values())[1:]:
            if p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD):
                continue

            value = self._resolve_parameter(implementation, p, _declared_type(p, hints))
            if p.kind is p.POSITIONAL_ONLY:
                args.append(value)
            else:
                kwargs[p.name] = value

        return args, kwargs

    def _resolve_parameter(self, implementation: type, p: inspect.Parameter, ann: Any) -> Any:
        if ann is inspect.Parameter.empty:
            if p.default is not p.empty:
                return p.default
            msg = f"cannot satisfy constructor parameter '{p.name}': no type annotation"
            raise ConstructionFailedError(implementation, msg)

        if p.default is p.empty:
            return self.resolve(ann)

        try:
            return self.resolve(ann)
        except UnregisteredServiceError as exc:
            if exc.key != InjectionKey(ann):
                raise
            return p.default

    def _inject_members(self, instance: object, implementation: type) -> None:
        for point in self._member_discovery(implementation):
            if not point.writable:
                logger.debug("Skipping read-only property %s.%s", implementation.__qualname__, point.attribute)
                continue

            value = self.resolve(point.service_type, point.name, point.tag)
            try:
                setattr(instance, point.attribute, value)
            except AttributeError as exc:
                raise ConstructionFailedError(implementation, f"cannot set '{point.attribute}': {exc}") from exc

    # scopes

    @property
    def current_scope(self) -> Scope | None:
        return self._current_scope.get()

    def open_scope(self) -> ScopeHandle:
        """Open a nested scope and make it current for the calling context."""
        scope = Scope(parent=self._current_scope.get())
        self._current_scope.set(scope)
        logger.debug("Opened scope #%d (depth %d)", scope.id, scope.depth)
        return ScopeHandle(self, scope)

    def _resolve_in_scope(self, scope: Scope, service_type: Any, name: str | None, tag: str | None) -> Any:
        token = self._current_scope.set(scope)
        try:
            return self.resolve(service_type, name, tag)
        finally:
            self._current_scope.reset(token)

    def _close_scope(self, scope: Scope) -> None:
        if scope.closed:
            return

        try:
            scope.dispose(skip=self._singleton_ids() if len(scope) else ())
        finally:
            if self._current_scope.get() is scope:
                parent = scope.parent
                while parent is not None and parent.closed:
                    parent = parent.parent
                self._current_scope.set(parent)

    # disposal

    def _created_singletons(self) -> list[object]:
        return [
            reg.instance
            for _, reg in self._registry
            if reg.lifetime is Lifetime.SINGLETON and reg.has_instance
        ]

    def _singleton_ids(self) -> set[int]:
        return {id(instance) for instance in self._created_singletons()}

    def dispose(self) -> None:
        """Close the current scope, then dispose created singletons in reverse registration order.

        Singletons that were never resolved are not built just to be disposed.
        Calling ``dispose`` again is a no-op.
        """
        with self._dispose_lock:
            if self._disposed:
                return
            self._disposed = True

        errors: list[BaseException] = []

        scope = self._current_scope.get()
        if scope is not None:
            try:
                self._close_scope(scope)
            except DisposalError as exc:
                errors.extend(exc.errors)

        singletons = self._created_singletons()
        logger.debug("Disposing container (%d singleton(s) created)", len(singletons))
        errors.extend(dispose_instances(reversed(singletons)))

        if errors:
            raise DisposalError(errors)

    def __enter__(self) -> Container:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.dispose()


def _find_constructor(implementation: Any) -> Any:
    if not inspect.isclass(implementation):
        raise NoPublicConstructorError(implementation, "not a class")

    if _is_protocol(implementation):
        raise NoPublicConstructorError(implementation, "protocols cannot be instantiated")

    if inspect.isabstract(implementation):
        abstract = ", ".join(sorted(implementation.__abstractmethods__))
        raise NoPublicConstructorError(implementation, f"abstract methods {abstract}")

    return inspect.getattr_static(implementation, "__init__")


def _get_init_type_hints(implementation: type, init: Any) -> dict[str, Any]:
    try:
        hints = get_type_hints(init)
    except TypeError:
        hints = {}
    except NameError as exc:
        logger.warning(
            "'%s' name error retrieving %s (%s) type hints",
            exc.name,
            implementation.__name__,
            implementation.__qualname__,
        )
        hints = {}

    return hints


def _declared_type(p: inspect.Parameter, hints: dict[str, Any]) -> Any:
    ann = hints.get(p.name, inspect.Parameter.empty)
    if p.default is not None:
        return ann

    # `x: T = None` is read back as Optional[T] on Python 3.10
    if get_origin(ann) in (Union, types.UnionType):
        args = [arg for arg in get_args(ann) if arg is not type(None)]
        if len(args) == 1:
            return args[0]

    return ann

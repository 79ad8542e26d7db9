"""
Temporal decorators for turning repositories into activities and proxies.

- ``temporal_activity_registration`` wraps every protocol method of a
  concrete repository as a Temporal activity named ``<prefix>.<method>``.
- ``temporal_workflow_proxy`` implements every protocol method of a
  repository protocol by executing the matching activity from inside a
  workflow, re-validating pydantic return values on the way back.

Both discover methods the same way, so an activity exists for every
proxy method.
"""

import functools
import inspect
import logging
from datetime import timedelta
from typing import (
    Any,
    Callable,
    Dict,
    Optional,
    Type,
    TypeVar,
    Union,
    get_args,
    get_origin,
)

from pydantic import BaseModel
from temporalio import activity, workflow
from temporalio.common import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

FAIL_FAST_RETRY_POLICY = RetryPolicy(
    initial_interval=timedelta(seconds=1),
    maximum_attempts=1,
    backoff_coefficient=1.0,
    maximum_interval=timedelta(seconds=1),
)


def discover_protocol_methods(
    cls_hierarchy: tuple[type, ...],
) -> Dict[str, Any]:
    """
    Find the public async methods declared by the Protocols in a class MRO.

    Args:
        cls_hierarchy: The class MRO (method resolution order)

    Returns:
        Dict mapping method names to the protocol's method objects
    """
    methods: Dict[str, Any] = {}
    for base_class in cls_hierarchy:
        if base_class is object:
            continue
        if not getattr(base_class, "_is_protocol", False):
            continue

        for name, member in base_class.__dict__.items():
            if name in methods or name.startswith("_"):
                continue
            if inspect.iscoroutinefunction(member):
                methods[name] = member

    logger.debug(
        f"Protocol discovery found {len(methods)} methods: {list(methods)}"
    )
    return methods


def temporal_activity_registration(
    activity_prefix: str,
) -> Callable[[Type[T]], Type[T]]:
    """
    Class decorator that registers a repository's protocol methods as
    Temporal activities.

    Example:
        @temporal_activity_registration("archive.lock_repo.minio")
        class TemporalMinioLockRepository(MinioLockRepository):
            pass

        # remove() becomes the activity "archive.lock_repo.minio.remove"
    """

    def decorator(cls: Type[T]) -> Type[T]:
        wrapped = []
        for name in discover_protocol_methods(cls.__mro__):
            implementation = getattr(cls, name)
            activity_name = f"{activity_prefix}.{name}"

            def make_wrapper(
                implementation: Callable[..., Any], method_name: str
            ) -> Callable[..., Any]:
                @functools.wraps(implementation)
                async def wrapper(*args: Any, **kwargs: Any) -> Any:
                    return await implementation(*args, **kwargs)

                wrapper.__name__ = method_name
                wrapper.__qualname__ = f"{cls.__name__}.{method_name}"
                return wrapper

            setattr(
                cls,
                name,
                activity.defn(name=activity_name)(
                    make_wrapper(implementation, name)
                ),
            )
            wrapped.append(name)

        logger.info(
            f"Temporal activity registration applied to {cls.__name__}",
            extra={
                "wrapped_methods": wrapped,
                "activity_prefix": activity_prefix,
            },
        )
        return cls

    return decorator


def temporal_workflow_proxy(
    activity_base: str,
    default_timeout_seconds: int = 30,
    fail_fast_methods: Optional[list[str]] = None,
    method_timeouts: Optional[Dict[str, int]] = None,
) -> Callable[[Type[T]], Type[T]]:
    """
    Class decorator that implements a repository protocol inside workflows
    by delegating each method to the activity of the same name.

    Args:
        activity_base: Activity name prefix, e.g. "archive.lock_repo.minio"
        default_timeout_seconds: start-to-close timeout for each activity
        fail_fast_methods: Methods that must not be retried, because a
            retry could repeat a non-idempotent side effect
        method_timeouts: Per-method timeout overrides in seconds

    Only positional arguments are supported; the activity receives them in
    order.
    """

    def decorator(cls: Type[T]) -> Type[T]:
        fail_fast = set(fail_fast_methods or [])
        timeouts = dict(method_timeouts or {})
        wrapped = []

        for method_name, protocol_method in discover_protocol_methods(
            cls.__mro__
        ).items():
            return_annotation = inspect.signature(
                protocol_method
            ).return_annotation
            activity_name = f"{activity_base}.{method_name}"
            timeout = timedelta(
                seconds=timeouts.get(method_name, default_timeout_seconds)
            )
            retry_policy = (
                FAIL_FAST_RETRY_POLICY if method_name in fail_fast else None
            )

            def make_proxy_method(
                method_name: str,
                activity_name: str,
                timeout: timedelta,
                retry_policy: Optional[RetryPolicy],
                return_annotation: Any,
                protocol_method: Any,
            ) -> Callable[..., Any]:
                @functools.wraps(protocol_method)
                async def proxy_method(
                    self: Any, *args: Any, **kwargs: Any
                ) -> Any:
                    if kwargs:
                        raise ValueError(
                            f"kwargs not supported in workflow proxy "
                            f"for {method_name}. Use positional args."
                        )

                    raw_result = await workflow.execute_activity(
                        activity_name,
                        args=list(args),
                        start_to_close_timeout=timeout,
                        retry_policy=retry_policy,
                    )
                    return revalidate(return_annotation, raw_result)

                return proxy_method

            setattr(
                cls,
                method_name,
                make_proxy_method(
                    method_name,
                    activity_name,
                    timeout,
                    retry_policy,
                    return_annotation,
                    protocol_method,
                ),
            )
            wrapped.append(method_name)

        logger.info(
            f"Temporal workflow proxy applied to {cls.__name__}",
            extra={
                "wrapped_methods": wrapped,
                "activity_base": activity_base,
                "default_timeout_seconds": default_timeout_seconds,
                "fail_fast_methods": sorted(fail_fast),
            },
        )
        return cls

    return decorator


def revalidate(annotation: Any, value: Any) -> Any:
    """Turn an activity's decoded result back into the declared type.

    Activities executed by name come back as plain JSON values; pydantic
    models (bare, Optional or inside a list) are rebuilt from them.
    """
    if value is None:
        return None

    model = _pydantic_model(annotation)
    if model is not None:
        return value if isinstance(value, model) else model.model_validate(
            value
        )

    if get_origin(annotation) is list:
        (item_type,) = get_args(annotation) or (Any,)
        return [revalidate(item_type, item) for item in value]

    return value


def _pydantic_model(annotation: Any) -> Optional[Type[BaseModel]]:
    if inspect.isclass(annotation) and issubclass(annotation, BaseModel):
        return annotation
    if get_origin(annotation) is Union:
        members = [a for a in get_args(annotation) if a is not type(None)]
        if len(members) == 1:
            return _pydantic_model(members[0])
    return None

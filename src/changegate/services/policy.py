"""Approval policy registry.

A policy is registered per mapped class and answers two questions for the
flush hook: does a change to this persisted record need review, and which
attributes are exempt from capture. The registry is process-wide and is
expected to be filled once at import/startup time.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from sqlalchemy import inspect

from changegate.errors.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def type_key(cls: type) -> str:
    """Fully-qualified name used to store and revive a record type."""
    return f"{cls.__module__}.{cls.__qualname__}"


@dataclass(frozen=True)
class ApprovalPolicy:
    model: type
    when: Callable[[Any], bool] | str
    skip_attributes: frozenset[str]

    @property
    def record_type(self) -> str:
        return type_key(self.model)

    def needs_approval(self, record: Any) -> bool:
        if callable(self.when):
            return bool(self.when(record))
        value = getattr(record, self.when)
        return bool(value() if callable(value) else value)

    def excluded_fields(self) -> frozenset[str]:
        return self.skip_attributes


_registry: dict[type, ApprovalPolicy] = {}


def register_approval(
    model: type,
    when: Callable[[Any], bool] | str,
    skip_attributes: Iterable[str] = (),
) -> ApprovalPolicy:
    """Put changes to persisted instances of *model* behind approval.

    Args:
        model: A mapped SQLAlchemy class.
        when: Callable taking the record, or the name of a method/property on
            the model. A truthy result means the change must be reviewed.
        skip_attributes: Column keys whose changes never need approval.

    Raises:
        ConfigurationError: If the model, predicate or skipped attributes
            do not fit the mapping.
    """
    mapper = inspect(model, raiseerr=False)
    if mapper is None or not isinstance(model, type):
        raise ConfigurationError(f"{model!r} is not a mapped class")
    if len(mapper.primary_key) != 1:
        raise ConfigurationError(
            f"{type_key(model)} must have a single-column primary key to require approval"
        )

    if isinstance(when, str):
        if not hasattr(model, when):
            raise ConfigurationError(
                f"{type_key(model)} has no attribute '{when}' to decide approval",
                details={"when": when},
            )
    elif not callable(when):
        raise ConfigurationError(
            f"Approval predicate for {type_key(model)} must be callable or an attribute name"
        )

    if isinstance(skip_attributes, str):
        skip_attributes = (skip_attributes,)
    skipped = frozenset(skip_attributes)
    columns = set(mapper.column_attrs.keys())
    unknown = sorted(skipped - columns)
    if unknown:
        raise ConfigurationError(
            f"{type_key(model)} has no column(s) {', '.join(unknown)} to skip",
            details={"unknown_attributes": unknown},
        )

    policy = ApprovalPolicy(model=model, when=when, skip_attributes=skipped)
    _registry[model] = policy

    from changegate.services.interception import install

    install()
    logger.debug("Registered approval policy for %s (skipping %s)", policy.record_type, sorted(skipped))
    return policy


def requires_approval(
    when: Callable[[Any], bool] | str,
    skip_attributes: Iterable[str] = (),
):
    """Class decorator form of :func:`register_approval`."""

    def _decorate(model: type) -> type:
        register_approval(model, when=when, skip_attributes=skip_attributes)
        return model

    return _decorate


def unregister_approval(model: type) -> None:
    _registry.pop(model, None)


def clear_registry() -> None:
    _registry.clear()


def get_policy(model_or_record: Any) -> ApprovalPolicy | None:
    """Policy for a class or instance; subclasses inherit their parent's policy."""
    cls = model_or_record if isinstance(model_or_record, type) else type(model_or_record)
    for klass in cls.__mro__:
        policy = _registry.get(klass)
        if policy is not None:
            return policy
    return None


def resolve_record_class(name: str) -> type | None:
    """Find a registered (or descendant) mapped class by its type key."""
    for policy in list(_registry.values()):
        for mapper in inspect(policy.model).self_and_descendants:
            if type_key(mapper.class_) == name:
                return mapper.class_
    return None


def record_key(record: Any) -> tuple[str, str]:
    """(record_type, record_id) identifying the approval queue of a persisted record."""
    state = inspect(record)
    identity = state.identity
    if identity is None:
        raise ConfigurationError(f"{type_key(type(record))} instance has no persisted identity")
    return type_key(type(record)), str(identity[0])

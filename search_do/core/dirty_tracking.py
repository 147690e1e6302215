"""
Dirty-field tracking for searchable records.

A tracker answers one question for the coordinator: did any observed field
of this record change since it was last saved? SQLAlchemy-mapped classes
already keep attribute history, so the bridge tracker reads it; any other
class gets the self-made tracker, which records changes from __setattr__.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, FrozenSet, Optional, Set

from sqlalchemy import inspect as sa_inspect

logger = logging.getLogger(__name__)

CHANGED_FIELDS_ATTR = "_search_do_changed_fields"

_MISSING = object()


def is_mapped_class(model_class: type) -> bool:
    """Whether the class is mapped by SQLAlchemy."""
    return sa_inspect(model_class, raiseerr=False) is not None


class ChangeTracker(ABC):
    """Decides whether a record's index entry is out of date."""

    def __init__(self, observed_fields: FrozenSet[str]):
        self.observed_fields = frozenset(observed_fields)

    def install(self, model_class: type) -> None:
        """Hook into the model class once at setup time."""

    @abstractmethod
    def needs_update(self, record: Any, field_name: Optional[str] = None) -> bool:
        ...

    @abstractmethod
    def clear_changed(self, record: Any) -> None:
        ...


class BridgeChangeTracker(ChangeTracker):
    """
    Change tracker backed by SQLAlchemy attribute history.

    History is pending between an attribute assignment and the end of the
    flush that writes it, which covers the mapper ``after_update`` event.
    SQLAlchemy resets it itself once the flush completes.
    """

    def _is_dirty(self, state, field_name: str) -> bool:
        if field_name not in state.attrs:
            return False
        return state.attrs[field_name].history.has_changes()

    def needs_update(self, record: Any, field_name: Optional[str] = None) -> bool:
        state = sa_inspect(record)
        if field_name is not None:
            return self._is_dirty(state, field_name)
        return any(self._is_dirty(state, name) for name in self.observed_fields)

    def clear_changed(self, record: Any) -> None:
        # Flushed history is committed by the session.
        pass


class SelfMadeChangeTracker(ChangeTracker):
    """
    Change tracker that keeps its own per-instance set of changed fields.

    ``install`` wraps the class ``__setattr__``. An assignment to an observed
    field is recorded when the new value differs from the current one.
    """

    def install(self, model_class: type) -> None:
        if getattr(model_class, "__search_do_tracked__", False):
            return

        observed = self.observed_fields
        original_setattr = model_class.__setattr__

        def __setattr__(record, name, value):
            if name in observed:
                changed = _changed_fields(record)
                if name not in changed and getattr(record, name, _MISSING) != value:
                    changed.add(name)
            original_setattr(record, name, value)

        model_class.__setattr__ = __setattr__
        model_class.__search_do_tracked__ = True
        logger.debug(f"Installed self-made change tracking on {model_class.__name__}")

    def changed_fields(self, record: Any) -> Set[str]:
        return set(_changed_fields(record))

    def needs_update(self, record: Any, field_name: Optional[str] = None) -> bool:
        changed = _changed_fields(record)
        if field_name is not None:
            return field_name in changed
        return bool(changed)

    def clear_changed(self, record: Any) -> None:
        _changed_fields(record).clear()


def _changed_fields(record: Any) -> Set[str]:
    changed = record.__dict__.get(CHANGED_FIELDS_ATTR)
    if changed is None:
        changed = set()
        # bypass the tracking __setattr__
        object.__setattr__(record, CHANGED_FIELDS_ATTR, changed)
    return changed


def tracker_for(model_class: type, observed_fields: FrozenSet[str]) -> ChangeTracker:
    """Pick the tracking strategy for a model class."""
    if is_mapped_class(model_class):
        return BridgeChangeTracker(observed_fields)
    return SelfMadeChangeTracker(observed_fields)

"""
Declaring a model searchable.

``searchable(...)`` builds the model's SearchConfig, picks the change
tracking strategy, connects the index backend and, for SQLAlchemy-mapped
models, keeps the index in step with the session:

* mapper ``after_insert``/``after_update``/``after_delete`` queue index work
  in ``Session.info``, keyed by the savepoint or root transaction it ran in
* ``after_flush_postexec`` builds the documents of queued records
* ``after_commit`` moves a released savepoint's work to its parent, and on
  the root commit applies everything to the backend
* ``after_soft_rollback`` discards the work of the rolled back transaction
  and the savepoints inside it

Index requests therefore run after the rows are committed and a backend
error raised from ``commit()`` leaves the committed rows in place. Work the
failed request left unapplied is logged so the index can be rebuilt.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import event
from sqlalchemy.orm import Session, object_session

from ..backends import connect
from ..schemas.index import IndexDocument
from .dirty_tracking import is_mapped_class, tracker_for
from .exceptions import ConfigurationError
from .search_config import SearchConfig

logger = logging.getLogger(__name__)

PENDING_KEY = "search_do_pending"


class SearchIndexDescriptor:
    """``Model.search_index``: the coordinator bound to the accessed class."""

    def __get__(self, instance, owner):
        return owner.__search_config__.coordinator_for(owner)


@dataclass
class PendingIndexOperation:
    coordinator: Any
    action: str
    record_id: Any
    record: Any
    document: Optional[IndexDocument] = None


def searchable(
    searchable_fields: Optional[List[str]] = None,
    attributes: Optional[Dict[str, Any]] = None,
    if_changed: Optional[List[str]] = None,
    ignore_timestamp: bool = False,
    auto_update: bool = True,
    config: Optional[Dict[str, Any]] = None,
    backend=None,
) -> Callable[[type], type]:
    """
    Class decorator making a model searchable.

    Args:
        searchable_fields: Fields whose values become the document's text
            blocks, in order. Defaults to ["body"]
        attributes: Stored attributes, name -> source field or method name,
            callable taking the record, or None for the field of that name
        if_changed: Extra fields whose change triggers reindexing
        ignore_timestamp: Don't store created/updated timestamps as
            cdate/mdate
        auto_update: Maintain the index from SQLAlchemy session events
        config: Per-model overrides of the backend settings
        backend: Ready backend instance to use instead of connecting one

    Raises:
        ConfigurationError: If a configured field is not defined on the
            model or the backend is not supported
    """
    def decorate(model_class: type) -> type:
        search_config = SearchConfig(
            model_class=model_class,
            searchable_fields=list(searchable_fields) if searchable_fields is not None else ["body"],
            attributes_to_store=dict(attributes or {}),
            if_changed=list(if_changed or []),
            auto_update=auto_update,
            ignore_timestamp=ignore_timestamp,
            backend_config=dict(config or {}),
        )
        if not ignore_timestamp:
            search_config.record_timestamps()

        missing = search_config.missing_accessors()
        if missing:
            raise ConfigurationError(
                f"{model_class.__name__} does not define searchable field(s): {', '.join(missing)}"
            )

        tracker = tracker_for(model_class, search_config.observed_fields)
        tracker.install(model_class)
        search_config.tracker = tracker

        if backend is not None:
            search_config.backend = backend
        else:
            search_config.backend = connect(search_config.table_name, search_config.backend_config)

        model_class.__search_config__ = search_config
        model_class.search_index = SearchIndexDescriptor()

        if auto_update and is_mapped_class(model_class):
            _listen_mapper_events(model_class)
            _listen_session_events()

        logger.info(
            f"{model_class.__name__} is searchable on node {search_config.backend.node_name} "
            f"(tracker: {type(tracker).__name__}, auto_update: {auto_update})"
        )
        return model_class

    return decorate


def _owner(session: Session):
    """The savepoint or root transaction that index work queued now belongs to."""
    return session.get_nested_transaction() or session.get_transaction()


def _boundary(transaction):
    while not transaction.nested and transaction.parent is not None:
        transaction = transaction.parent
    return transaction


def _within(transaction, ancestor) -> bool:
    while transaction is not None:
        if transaction is ancestor:
            return True
        transaction = transaction.parent
    return False


def _merge(queue: Dict[Any, PendingIndexOperation], key: Any, operation: PendingIndexOperation) -> None:
    previous = queue.get(key)
    if previous is not None and previous.action == "add" and operation.action == "update":
        # not in the index yet
        operation.action = "add"
    queue[key] = operation


def _queue(target: Any, action: str) -> None:
    session = object_session(target)
    if session is None:
        return

    search_config = type(target).__search_config__
    record_id = search_config.record_id(target)
    queues = session.info.setdefault(PENDING_KEY, {})
    queue = queues.setdefault(_owner(session), {})
    _merge(queue, (id(search_config), record_id), PendingIndexOperation(
        coordinator=search_config.coordinator_for(type(target)),
        action=action,
        record_id=record_id,
        record=target,
    ))


def _after_insert(mapper, connection, target) -> None:
    _queue(target, "add")


def _after_update(mapper, connection, target) -> None:
    if type(target).__search_config__.tracker.needs_update(target):
        _queue(target, "update")


def _after_delete(mapper, connection, target) -> None:
    _queue(target, "remove")


def _listen_mapper_events(model_class: type) -> None:
    for name, handler in (("after_insert", _after_insert),
                          ("after_update", _after_update),
                          ("after_delete", _after_delete)):
        if not event.contains(model_class, name, handler):
            event.listen(model_class, name, handler, propagate=True)


def _build_documents(session: Session, flush_context) -> None:
    for queue in session.info.get(PENDING_KEY, {}).values():
        for operation in queue.values():
            if operation.action != "remove" and operation.document is None:
                operation.document = operation.coordinator.build_document(operation.record)


def _release_savepoint(session: Session, savepoint) -> None:
    queues = session.info.get(PENDING_KEY, {})
    released = queues.pop(savepoint, None)
    if not released:
        return

    parent = queues.setdefault(_boundary(savepoint.parent), {})
    for key, operation in released.items():
        _merge(parent, key, operation)
    logger.debug(f"Moved {len(released)} index operation(s) from a released savepoint to its parent")


def _apply_pending(session: Session) -> None:
    savepoint = session.get_nested_transaction()
    if savepoint is not None:
        _release_savepoint(session, savepoint)
        return

    queues = session.info.pop(PENDING_KEY, None)
    operations = [operation for queue in (queues or {}).values() for operation in queue.values()]
    if not operations:
        return

    logger.debug(f"Applying {len(operations)} index operation(s) after commit")
    applied = 0
    try:
        for operation in operations:
            document = operation.document
            if document is None and operation.action != "remove":
                document = operation.coordinator.build_document(operation.record)
            operation.coordinator.apply(operation.action, operation.record_id, document)
            applied += 1
    finally:
        skipped = operations[applied:]
        if skipped:
            logger.error(
                f"{len(skipped)} index operation(s) were not applied, reindex to recover: "
                + ", ".join(f"{op.coordinator.name}#{op.record_id} ({op.action})" for op in skipped)
            )


def _discard_rolled_back(session: Session, previous_transaction) -> None:
    queues = session.info.get(PENDING_KEY)
    if not queues:
        return

    boundary = _boundary(previous_transaction)
    discarded = 0
    for owner in [owner for owner in queues if _within(owner, boundary)]:
        discarded += len(queues.pop(owner))
    if discarded:
        logger.debug(f"Discarded {discarded} index operation(s) on rollback")
    if not queues:
        session.info.pop(PENDING_KEY, None)


def _end_transaction(session: Session, transaction) -> None:
    if transaction.parent is not None:
        return
    queues = session.info.pop(PENDING_KEY, None)
    if queues:
        count = sum(len(queue) for queue in queues.values())
        logger.debug(f"Discarded {count} index operation(s) when the transaction ended")


def _listen_session_events() -> None:
    for name, handler in (("after_flush_postexec", _build_documents),
                          ("after_commit", _apply_pending),
                          ("after_soft_rollback", _discard_rolled_back),
                          ("after_transaction_end", _end_transaction)):
        if not event.contains(Session, name, handler):
            event.listen(Session, name, handler)

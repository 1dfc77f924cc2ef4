import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

logger = logging.getLogger("app.realtime")

Row = dict[str, Any]


class EventType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    event_type: EventType
    table: str
    current: Row | None
    previous: Row | None = None

    @property
    def row(self) -> Row:
        return self.current if self.current is not None else (self.previous or {})


@dataclass(frozen=True)
class SubscriptionHandle:
    table: str
    id: str = field(default_factory=lambda: uuid4().hex)


Predicate = Callable[[ChangeEvent], bool]
Handler = Callable[[ChangeEvent], None]


@dataclass(frozen=True)
class _Subscription:
    handle: SubscriptionHandle
    predicate: Predicate | None
    handler: Handler


def _column_values(obj: Any) -> Row:
    state = inspect(obj)
    loaded = state.dict
    return {
        attr.key: loaded[attr.key]
        for attr in state.mapper.column_attrs
        if attr.key in loaded
    }


def _previous_values(obj: Any) -> Row:
    state = inspect(obj)
    previous: Row = {}
    for attr in state.mapper.column_attrs:
        history = state.attrs[attr.key].history
        if history.deleted:
            previous[attr.key] = history.deleted[0]
        elif history.unchanged:
            previous[attr.key] = history.unchanged[0]
    return previous


def _table_name(obj: Any) -> str:
    return inspect(obj).mapper.persist_selectable.name


class ChangeFeed:
    def __init__(self) -> None:
        self._subscriptions: dict[str, _Subscription] = {}
        self._lock = threading.Lock()
        self._pending_key = f"change_feed_pending:{id(self)}"

    def subscribe(self, table: str, handler: Handler, predicate: Predicate | None = None) -> SubscriptionHandle:
        handle = SubscriptionHandle(table=table)
        with self._lock:
            self._subscriptions[handle.id] = _Subscription(handle=handle, predicate=predicate, handler=handler)
        logger.debug("change_feed_subscribed table=%s handle=%s", table, handle.id)
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> bool:
        with self._lock:
            removed = self._subscriptions.pop(handle.id, None)
        return removed is not None

    def subscriber_count(self, table: str | None = None) -> int:
        with self._lock:
            return sum(1 for sub in self._subscriptions.values() if table is None or sub.handle.table == table)

    def publish(self, change: ChangeEvent) -> int:
        with self._lock:
            subscriptions = [sub for sub in self._subscriptions.values() if sub.handle.table == change.table]

        delivered = 0
        for subscription in subscriptions:
            try:
                if subscription.predicate is not None and not subscription.predicate(change):
                    continue
                subscription.handler(change)
                delivered += 1
            except Exception:
                logger.exception(
                    "change_feed_handler_failed table=%s event=%s handle=%s",
                    change.table,
                    change.event_type.value,
                    subscription.handle.id,
                )
        return delivered

    def attach(self, session_target: Any = Session) -> None:
        if event.contains(session_target, "after_flush", self._collect):
            return
        event.listen(session_target, "after_flush", self._collect)
        event.listen(session_target, "after_commit", self._flush_pending)
        event.listen(session_target, "after_rollback", self._discard_pending)

    def detach(self, session_target: Any = Session) -> None:
        if not event.contains(session_target, "after_flush", self._collect):
            return
        event.remove(session_target, "after_flush", self._collect)
        event.remove(session_target, "after_commit", self._flush_pending)
        event.remove(session_target, "after_rollback", self._discard_pending)

    def _collect(self, session: Session, _flush_context: Any) -> None:
        # bulk update() and delete() bypass the unit of work and never reach here
        pending: list[ChangeEvent] = session.info.setdefault(self._pending_key, [])
        for obj in session.new:
            pending.append(ChangeEvent(EventType.INSERT, _table_name(obj), current=_column_values(obj)))
        for obj in session.dirty:
            if not session.is_modified(obj, include_collections=False):
                continue
            pending.append(
                ChangeEvent(
                    EventType.UPDATE,
                    _table_name(obj),
                    current=_column_values(obj),
                    previous=_previous_values(obj),
                )
            )
        for obj in session.deleted:
            pending.append(ChangeEvent(EventType.DELETE, _table_name(obj), current=None, previous=_column_values(obj)))

    def _flush_pending(self, session: Session) -> None:
        pending = session.info.pop(self._pending_key, [])
        for change in pending:
            self.publish(change)

    def _discard_pending(self, session: Session) -> None:
        session.info.pop(self._pending_key, None)


change_feed = ChangeFeed()
change_feed.attach(Session)

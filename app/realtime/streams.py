import asyncio
import json
from dataclasses import dataclass
from typing import Any

from app.realtime.change_feed import ChangeEvent, ChangeFeed, EventType, SubscriptionHandle
from app.realtime.toasts import REQUESTS_TABLE, toast_message_for

NOTIFICATIONS_TABLE = "notifications"


@dataclass(frozen=True)
class StreamItem:
    kind: str
    payload: dict[str, Any]

    def to_sse(self) -> str:
        return f"event: {self.kind}\ndata: {json.dumps(self.payload, default=str)}\n\n"


class RealtimeStream:
    def __init__(self, feed: ChangeFeed, viewer_id: int, loop: asyncio.AbstractEventLoop) -> None:
        self._feed = feed
        self._viewer_id = viewer_id
        self._loop = loop
        self._queue: asyncio.Queue[StreamItem] = asyncio.Queue()
        self._handles: list[SubscriptionHandle] = []

    def __enter__(self) -> "RealtimeStream":
        if self._handles:
            return self
        self._handles = [
            self._feed.subscribe(REQUESTS_TABLE, self._on_request_change),
            self._feed.subscribe(
                NOTIFICATIONS_TABLE,
                self._on_notification,
                predicate=self._is_own_new_notification,
            ),
        ]
        return self

    def __exit__(self, *exc_info: object) -> None:
        for handle in self._handles:
            self._feed.unsubscribe(handle)
        self._handles = []

    @property
    def is_open(self) -> bool:
        return bool(self._handles)

    async def get(self, timeout: float) -> StreamItem | None:
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def _put(self, item: StreamItem) -> None:
        # feed handlers run on the committing thread
        self._loop.call_soon_threadsafe(self._queue.put_nowait, item)

    def _on_request_change(self, change: ChangeEvent) -> None:
        message = toast_message_for(change, self._viewer_id)
        if message:
            self._put(StreamItem(kind="toast", payload={"message": message, "request_id": change.row.get("id")}))

    def _is_own_new_notification(self, change: ChangeEvent) -> bool:
        return change.event_type is EventType.INSERT and change.row.get("recipient_id") == self._viewer_id

    def _on_notification(self, change: ChangeEvent) -> None:
        row = change.row
        self._put(
            StreamItem(
                kind="notification",
                payload={
                    "id": row.get("id"),
                    "type": row.get("type"),
                    "message": row.get("message"),
                    "request_id": row.get("request_id"),
                },
            )
        )

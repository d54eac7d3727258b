"""
TaskFeed - in-memory live subscriptions to a user's task list.

Each subscriber holds an asyncio.Queue of snapshots. A snapshot is a tuple of
frozen Task models: the complete task list of the user at one point in time,
in no particular order. Only the newest snapshot matters to a consumer, so a
full queue drops its oldest entry instead of blocking the publisher.
"""
import asyncio
import logging
from collections import defaultdict
from typing import Iterable, Optional

from models import Task

logger = logging.getLogger(__name__)

Snapshot = tuple[Task, ...]


class Subscription:
    """
    A cancellable stream of snapshots for one user.

    Iterate with `async for snapshot in subscription`; iteration ends once
    close() has been called (close() is the unsubscribe handle).
    """

    def __init__(self, feed: "TaskFeed", user_id: str, queue: asyncio.Queue) -> None:
        self._feed = feed
        self.user_id = user_id
        self._queue = queue
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._feed._remove(self.user_id, self._queue)
        # Wake a consumer blocked in get()
        _offer(self._queue, None)

    async def next_snapshot(self) -> Optional[Snapshot]:
        """The next snapshot, or None once the subscription is closed."""
        if self._closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is None or self._closed:
            return None
        return item

    def __aiter__(self):
        return self

    async def __anext__(self) -> Snapshot:
        snapshot = await self.next_snapshot()
        if snapshot is None:
            raise StopAsyncIteration
        return snapshot


def _offer(queue: asyncio.Queue, item) -> None:
    """put_nowait that evicts the oldest pending item when the queue is full."""
    while True:
        try:
            queue.put_nowait(item)
            return
        except asyncio.QueueFull:
            try:
                queue.get_nowait()
            except asyncio.QueueEmpty:
                pass


class TaskFeed:
    """Per-user publish/subscribe of full task-list snapshots."""

    def __init__(self, queue_maxsize: int = 8) -> None:
        # user_id -> set of subscriber queues
        self._subscribers: dict[str, set[asyncio.Queue]] = defaultdict(set)
        self._queue_maxsize = queue_maxsize

    def subscribe(self, user_id: str, initial: Optional[Iterable[Task]] = None) -> Subscription:
        """
        Open a subscription for user_id.

        Args:
            user_id: Owner whose snapshots are delivered
            initial: Current task list, delivered as the first snapshot
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_maxsize)
        self._subscribers[user_id].add(queue)
        if initial is not None:
            _offer(queue, tuple(initial))
        logger.debug("Subscribed to tasks of user %s (%d subscribers)", user_id, len(self._subscribers[user_id]))
        return Subscription(self, user_id, queue)

    def publish(self, user_id: str, tasks: Iterable[Task]) -> int:
        """Deliver a snapshot to every subscriber of user_id. Returns the number reached."""
        queues = self._subscribers.get(user_id)
        if not queues:
            return 0
        snapshot: Snapshot = tuple(tasks)
        for queue in list(queues):
            _offer(queue, snapshot)
        return len(queues)

    def subscriber_count(self, user_id: str) -> int:
        return len(self._subscribers.get(user_id, ()))

    def _remove(self, user_id: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(user_id)
        if queues is None:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[user_id]

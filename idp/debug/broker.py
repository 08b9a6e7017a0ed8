"""
In-process fan-out of debug events, one topic per debug session id.
"""

import asyncio
from collections import OrderedDict, deque
from typing import Any, Deque, Dict, List, Set
from loguru import logger
from idp.constants import DEBUG_HISTORY_LIMIT, DEBUG_MAX_TOPICS, DEBUG_QUEUE_SIZE


class Subscription:
    def __init__(self, session_id: str, queue_size: int):
        self.session_id = session_id
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)

    def deliver(self, event: Any) -> None:
        # Slow consumers lose their oldest events rather than blocking publishers.
        if self.queue.full():
            self.queue.get_nowait()
        self.queue.put_nowait(event)

    async def get(self) -> Any:
        return await self.queue.get()


class DebugEventBroker:
    """
    Holds live subscribers and a bounded replay history per debug session id.
    """

    def __init__(
        self,
        history_limit: int = DEBUG_HISTORY_LIMIT,
        queue_size: int = DEBUG_QUEUE_SIZE,
        max_topics: int = DEBUG_MAX_TOPICS,
    ):
        self.history_limit = history_limit
        self.queue_size = queue_size
        self.max_topics = max_topics
        self._subscribers: Dict[str, Set[Subscription]] = {}
        self._history: "OrderedDict[str, Deque[Any]]" = OrderedDict()

    def subscribe(self, session_id: str) -> Subscription:
        subscription = Subscription(session_id, self.queue_size)
        self._subscribers.setdefault(session_id, set()).add(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.session_id)
        if not subscribers:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscribers[subscription.session_id]

    def subscriber_count(self, session_id: str) -> int:
        return len(self._subscribers.get(session_id, ()))

    def publish(self, session_id: str, event: Any) -> int:
        """
        Record the event and hand it to every subscriber of the same session id.
        Returns the number of subscribers reached.
        """
        history = self._history.get(session_id)
        if history is None:
            history = deque(maxlen=self.history_limit)
            self._history[session_id] = history
            while len(self._history) > self.max_topics:
                evicted, _ = self._history.popitem(last=False)
                logger.debug(f"Evicted debug history for session {evicted}")
        else:
            self._history.move_to_end(session_id)
        history.append(event)

        subscribers = self._subscribers.get(session_id, ())
        for subscription in subscribers:
            subscription.deliver(event)
        return len(subscribers)

    def history(self, session_id: str) -> List[Any]:
        return list(self._history.get(session_id, ()))

    def clear(self, session_id: str) -> None:
        self._history.pop(session_id, None)

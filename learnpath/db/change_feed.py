"""Push notifications for document changes.

Every successful document-store write publishes a ChangeEvent.  Readers
that keep derived state (the progress cache) subscribe and drop what
the event makes stale, instead of polling the store.

  InMemoryChangeFeed   callbacks run in-process, awaited by the writer.
  RedisChangeFeed      events go through Redis pub/sub so every API
                       instance and the worker see every write.

Each event carries the writer's `origin` (SETTINGS.instance_id), which
lets a subscriber ignore the echo of its own writes.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import asdict, dataclass
from typing import Any, Protocol, runtime_checkable

from learnpath.db.redis import redis_pool

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    collection: str
    doc_id: str
    data: dict[str, Any] | None
    origin: str


ChangeCallback = Callable[[ChangeEvent], Awaitable[None]]
ChangePredicate = Callable[[ChangeEvent], bool]


@dataclass(eq=False, slots=True)
class Subscription:
    collection: str
    predicate: ChangePredicate | None
    callback: ChangeCallback
    active: bool = True

    def matches(self, event: ChangeEvent) -> bool:
        if not self.active or event.collection != self.collection:
            return False
        return self.predicate is None or self.predicate(event)

    def unsubscribe(self) -> None:
        self.active = False


@runtime_checkable
class ChangeFeed(Protocol):
    async def publish(self, event: ChangeEvent) -> None: ...

    def subscribe(
        self,
        collection: str,
        predicate: ChangePredicate | None,
        callback: ChangeCallback,
    ) -> Subscription: ...


class _Dispatcher:
    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    def subscribe(
        self,
        collection: str,
        predicate: ChangePredicate | None,
        callback: ChangeCallback,
    ) -> Subscription:
        sub = Subscription(collection, predicate, callback)
        self._subscriptions.append(sub)
        return sub

    async def dispatch(self, event: ChangeEvent) -> None:
        self._subscriptions = [s for s in self._subscriptions if s.active]
        for sub in list(self._subscriptions):
            if not sub.matches(event):
                continue
            try:
                await sub.callback(event)
            except Exception:
                # The write already happened; one broken listener must not
                # stop the others from hearing about it.
                logger.exception(
                    "Change listener failed for %s/%s", event.collection, event.doc_id
                )


class InMemoryChangeFeed(_Dispatcher):
    """Per-process feed for tests and local dev."""

    async def publish(self, event: ChangeEvent) -> None:
        await self.dispatch(event)


class RedisChangeFeed(_Dispatcher):
    """Redis pub/sub feed, shared by every API instance and the worker.

    The listener outlives connection failures: it logs, waits and
    subscribes again, doubling the wait up to `max_reconnect_delay`.
    Messages that do not decode into a ChangeEvent are skipped.
    """

    _PREFIX = "changes:"

    def __init__(
        self,
        redis_client,
        *,
        reconnect_delay: float = 0.5,
        max_reconnect_delay: float = 30.0,
    ) -> None:
        super().__init__()
        self._redis = redis_client
        self._listener: asyncio.Task | None = None
        self._reconnect_delay = reconnect_delay
        self._max_reconnect_delay = max_reconnect_delay

    async def publish(self, event: ChangeEvent) -> None:
        await self._redis.publish(
            f"{self._PREFIX}{event.collection}", json.dumps(asdict(event))
        )

    async def start(self) -> None:
        if self._listener is None:
            self._listener = asyncio.create_task(self._listen())

    async def stop(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None

    async def _listen(self) -> None:
        delay = self._reconnect_delay
        while True:
            try:
                async for event in self._events():
                    delay = self._reconnect_delay
                    await self.dispatch(event)
            except Exception:
                logger.exception(
                    "Change feed listener failed, reconnecting in %.1fs", delay
                )
            await asyncio.sleep(delay)
            delay = min(delay * 2, self._max_reconnect_delay)

    async def _events(self) -> AsyncIterator[ChangeEvent]:
        pubsub = self._redis.pubsub()
        try:
            await pubsub.psubscribe(f"{self._PREFIX}*")
            logger.info("Change feed listening on %s*", self._PREFIX)
            async for message in pubsub.listen():
                if message.get("type") != "pmessage":
                    continue
                event = _decode(message)
                if event is not None:
                    yield event
        finally:
            await pubsub.aclose()


def _decode(message: dict[str, Any]) -> ChangeEvent | None:
    try:
        return ChangeEvent(**json.loads(message["data"]))
    except (KeyError, TypeError, ValueError):
        logger.warning(
            "Skipping undecodable change message on %s", message.get("channel")
        )
        return None


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    change_feed: ChangeFeed = RedisChangeFeed(redis_pool)
else:
    change_feed = InMemoryChangeFeed()

"""Deliver subscription events to caller-supplied handlers."""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Union

import structlog

from ..db.gateway import ChangeEvent, Subscription

logger = structlog.get_logger()

Handler = Callable[[Any], Union[None, Awaitable[None]]]


class EventPump:
    """Runs a handler for every event of a subscription until closed.

    Handler exceptions are logged and the pump keeps going; one bad event
    must not tear down a live stream.
    """

    def __init__(
        self,
        subscription: Subscription,
        handler: Handler,
        transform: Optional[Callable[[ChangeEvent], Any]] = None,
    ):
        self.subscription = subscription
        self.handler = handler
        self.transform = transform
        self.delivered = 0
        self._task: Optional[asyncio.Task] = None

    def start(self) -> "EventPump":
        if self._task is None:
            self._task = asyncio.create_task(self._run())
        return self

    async def _run(self) -> None:
        async for event in self.subscription:
            try:
                payload = self.transform(event) if self.transform else event
                if payload is None:
                    continue
                result = self.handler(payload)
                if inspect.isawaitable(result):
                    await result
                self.delivered += 1
            except Exception as e:
                logger.error(
                    f"Realtime handler failed: {e}",
                    collection=self.subscription.collection,
                    event=event.event,
                )

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def close(self) -> None:
        """Release the subscription and stop the pump."""
        await self.subscription.close()
        if self._task is not None:
            try:
                await asyncio.wait_for(self._task, timeout=1.0)
            except asyncio.TimeoutError:
                self._task.cancel()
            self._task = None

    async def __aenter__(self) -> "EventPump":
        return self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

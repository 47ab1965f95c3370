"""Call forwarding between the client proxy and the server.

Calls travel as an operation name plus an ordered argument list and come
back as JSON-safe envelopes:

    {"ok": true, "result": ...}
    {"ok": false, "error": {"kind": "NotInitialized", "message": "..."}}

The client side tracks outstanding calls in a :class:`JobQueue`; the server
side wraps a :class:`SqlServer` in a :class:`ChannelHost`. Both know how to
drain, which is what the shutdown sequence relies on.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence, TypeVar

from .errors import ShutdownInProgress, StoreError, error_from_payload
from .interface import Operation
from .server import SqlServer

logger = logging.getLogger(__name__)

T = TypeVar("T")


def ok_envelope(result: Any) -> dict:
    return {"ok": True, "result": result}


def error_envelope(error: StoreError) -> dict:
    return {"ok": False, "error": error.to_payload()}


def unwrap(envelope: dict) -> Any:
    """Return the result of an envelope or raise the error it carries."""
    if envelope.get("ok"):
        return envelope.get("result")
    raise error_from_payload(envelope.get("error") or {})


class Transport(Protocol):
    """Carries forwarded calls to the side that owns the file."""

    async def invoke(self, operation: str, args: list[Any]) -> Any: ...

    async def drain_remote(self) -> None: ...


class JobQueue:
    """Tracks in-flight client calls so shutdown can flush them.

    Jobs are registered when they are submitted, not when they are first
    awaited, so a call issued before shutdown() is always drained.
    """

    def __init__(self):
        self._accepting = True
        self._pending: set[asyncio.Task] = set()

    @property
    def accepting(self) -> bool:
        return self._accepting

    @property
    def pending(self) -> int:
        return len(self._pending)

    def submit(self, job: Callable[[], Awaitable[T]]) -> "asyncio.Task[T]":
        """Schedule ``job`` and track it until it completes.

        Raises:
            ShutdownInProgress: If the queue stopped accepting work
        """
        if not self._accepting:
            raise ShutdownInProgress("Client is shutting down; no new operations accepted")
        task = asyncio.get_running_loop().create_task(job())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Stop accepting jobs and wait for outstanding ones to finish."""
        self._accepting = False
        while self._pending:
            # Failures stay with the caller that awaits the job
            await asyncio.wait(set(self._pending))


class ChannelHost:
    """Server-side endpoint that executes forwarded calls one at a time."""

    def __init__(self, server: SqlServer, logger: Optional[logging.Logger] = None):
        self.server = server
        self.logger = logger or server.logger
        self._draining = False
        self._in_flight = 0
        self._idle: Optional[asyncio.Event] = None

    @property
    def draining(self) -> bool:
        return self._draining

    def _idle_event(self) -> asyncio.Event:
        if self._idle is None:
            self._idle = asyncio.Event()
            self._idle.set()
        return self._idle

    async def call(self, operation: str, args: Optional[Sequence[Any]] = None) -> dict:
        """Execute one forwarded call and wrap the outcome in an envelope."""
        if self._draining and operation != Operation.CLOSE.value:
            return error_envelope(ShutdownInProgress(f"{operation}: Server is draining"))

        idle = self._idle_event()
        self._in_flight += 1
        idle.clear()
        try:
            result = await self.server.execute(operation, list(args or []))
        except StoreError as e:
            self.logger.debug("%s failed: %s", operation, e)
            return error_envelope(e)
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                idle.set()
        return ok_envelope(result)

    async def drain(self) -> None:
        """Stop accepting calls other than close and wait for in-flight ones."""
        self.logger.info("ChannelHost.drain: Draining %s in-flight call(s)", self._in_flight)
        self._draining = True
        await self._idle_event().wait()


class LocalTransport:
    """Transport for a client living in the same process as the host."""

    def __init__(self, host: ChannelHost):
        self._host = host

    async def invoke(self, operation: str, args: list[Any]) -> Any:
        return unwrap(await self._host.call(operation, args))

    async def drain_remote(self) -> None:
        await self._host.drain()

"""One subscriber socket relayed from one upstream firehose connection."""

import asyncio
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

import websockets
from fastapi import WebSocket, WebSocketDisconnect
from websockets.exceptions import ConnectionClosed, WebSocketException

from .errors import FrameDecodeError, UpstreamConnectError
from .firehose import FirehosePipeline
from .logging_setup import get_logger
from .metrics import active_sessions, frame_decode_errors_total, posts_dropped_total, posts_forwarded_total
from .ratelimit import WindowRateLimiter
from .types import RelayedPost

log = get_logger(__name__)

# Codes an endpoint may put in a close frame (1005, 1006 and 1015 are reserved)
SENDABLE_CLOSE_CODES = frozenset({1000, 1001, 1002, 1003, 1007, 1008, 1009, 1010, 1011})

Connector = Callable[..., Awaitable[Any]]


class SessionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(frozen=True)
class Teardown:
    """How both sockets should be closed once one side has finished."""
    reason: str
    upstream_code: int = 1000
    subscriber_code: Optional[int] = 1000


def matching_close_code(exc: ConnectionClosed) -> int:
    """Close code to relay to the subscriber after the upstream closed."""
    code = exc.rcvd.code if exc.rcvd is not None else 1006
    return code if code in SENDABLE_CLOSE_CODES else 1011


class RelaySession:
    """Owns the duplex relationship between a subscriber and the firehose.

    Three tasks run while the session is open: the upstream reader (runs the
    decode pipeline), the subscriber sender (drains a bounded queue so a slow
    subscriber never stalls the upstream) and the subscriber watcher (notices
    disconnects). Whichever finishes first tears the session down.
    """

    def __init__(
            self,
            subscriber: WebSocket,
            pipeline: FirehosePipeline,
            *,
            upstream_url: str,
            connect: Connector = websockets.connect,
            rate_limiter: Optional[WindowRateLimiter] = None,
            send_queue_size: int = 64,
            connect_timeout: float = 10.0,
            flush_timeout: float = 1.0,
            max_size: Optional[int] = None,
        ):
        self.id = uuid.uuid4().hex[:12]
        self.subscriber = subscriber
        self.pipeline = pipeline
        self.upstream_url = upstream_url
        self.rate_limiter = rate_limiter or WindowRateLimiter()
        self.send_queue: asyncio.Queue[str] = asyncio.Queue(maxsize=send_queue_size)
        self.state = SessionState.CONNECTING
        self.upstream = None

        self._connect = connect
        self._connect_timeout = connect_timeout
        self._max_size = max_size
        self._flush_timeout = flush_timeout
        self._tasks: List[asyncio.Task] = []
        self._upstream_closed = False
        self._subscriber_closed = False

        # Statistics
        self.forwarded = 0
        self.saturated = 0

        self.log = log.bind(session=self.id)

    async def run(self) -> None:
        """Serve the subscriber until either side goes away."""
        active_sessions.inc()
        try:
            await self._run()
        finally:
            if self.state is SessionState.OPEN:
                self.state = SessionState.CLOSING
            await self._cancel_tasks()
            await self._close_upstream(1001, "going away")
            self.state = SessionState.CLOSED
            active_sessions.dec()
            self.log.info(
                "session_closed",
                forwarded=self.forwarded,
                rate_limited=self.rate_limiter.dropped,
                saturated=self.saturated,
                last_seq=self.pipeline.last_seq,
                commits=self.pipeline.commit_filter.get_stats(),
            )

    async def _run(self) -> None:
        await self.subscriber.accept()

        try:
            await self._open_upstream()
        except UpstreamConnectError as e:
            self.log.error("upstream_connect_failed", upstream=self.upstream_url, error=str(e))
            await self._close_subscriber(1011, "upstream unavailable")
            return

        self.state = SessionState.OPEN
        self.log.info("session_open", upstream=self.upstream_url)

        self._tasks = [
            asyncio.create_task(self._pump_upstream()),
            asyncio.create_task(self._send_loop()),
            asyncio.create_task(self._watch_subscriber()),
        ]
        await asyncio.wait(self._tasks, return_when=asyncio.FIRST_COMPLETED)
        teardown = self._teardown()

        self.state = SessionState.CLOSING
        self.log.info("session_closing", reason=teardown.reason)
        await self._cancel_tasks()
        await self._close_upstream(teardown.upstream_code, teardown.reason)
        if teardown.subscriber_code is not None:
            await self._flush()
            await self._close_subscriber(teardown.subscriber_code, teardown.reason)

    async def _open_upstream(self) -> None:
        kwargs = {}
        if self._max_size is not None:
            kwargs["max_size"] = self._max_size
        try:
            self.upstream = await asyncio.wait_for(
                self._connect(self.upstream_url, **kwargs),
                timeout=self._connect_timeout,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamConnectError(f"Timed out after {self._connect_timeout}s") from e
        except (OSError, WebSocketException) as e:
            raise UpstreamConnectError(str(e) or type(e).__name__) from e

    def _teardown(self) -> Teardown:
        for task in self._tasks:
            if not task.done() or task.cancelled():
                continue
            exc = task.exception()
            if exc is not None:
                self.log.error("session_task_failed", error=repr(exc))
                return Teardown("internal error", upstream_code=1011, subscriber_code=1011)
            return task.result()
        return Teardown("internal error", upstream_code=1011, subscriber_code=1011)

    async def _cancel_tasks(self) -> None:
        pending = [t for t in self._tasks if not t.done()]
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _pump_upstream(self) -> Teardown:
        while True:
            try:
                message = await self.upstream.recv()
            except ConnectionClosed as e:
                code = matching_close_code(e)
                self.log.info("upstream_closed", code=code)
                self._upstream_closed = True
                return Teardown("upstream closed", subscriber_code=code)

            if isinstance(message, str):
                message = message.encode("utf-8")

            try:
                post = self.pipeline.process(message)
            except FrameDecodeError as e:
                frame_decode_errors_total.inc()
                self.log.error("frame_decode_failed", error=str(e))
                return Teardown("invalid upstream frame", upstream_code=1002, subscriber_code=1011)
            except Exception as e:
                self.log.error("frame_processing_failed", error=str(e))
                continue

            if post is not None:
                self._forward(post)

    def _forward(self, post: RelayedPost) -> None:
        if not self.rate_limiter.try_acquire():
            posts_dropped_total.labels(reason="rate_limited").inc()
            return
        try:
            self.send_queue.put_nowait(post.to_json())
        except asyncio.QueueFull:
            # Backpressure: drop while the subscriber cannot keep up
            self.saturated += 1
            posts_dropped_total.labels(reason="saturated").inc()
            return
        self.forwarded += 1
        posts_forwarded_total.inc()

    async def _send_loop(self) -> Teardown:
        while True:
            payload = await self.send_queue.get()
            try:
                await self.subscriber.send_text(payload)
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                self.log.info("subscriber_send_failed", error=str(e))
                self._subscriber_closed = True
                return Teardown("subscriber gone", subscriber_code=None)

    async def _watch_subscriber(self) -> Teardown:
        while True:
            message = await self.subscriber.receive()
            if message.get("type") == "websocket.disconnect":
                self._subscriber_closed = True
                self.log.info("subscriber_disconnected", code=message.get("code"))
                return Teardown("subscriber disconnected", subscriber_code=None)
            # Subscribers have nothing to say to the firehose
            self.log.debug("subscriber_message_ignored")

    async def _drain_queue(self) -> None:
        while not self.send_queue.empty():
            await self.subscriber.send_text(self.send_queue.get_nowait())

    async def _flush(self) -> None:
        """Best-effort delivery of posts still queued when the upstream ended."""
        try:
            await asyncio.wait_for(self._drain_queue(), timeout=self._flush_timeout)
        except (asyncio.TimeoutError, WebSocketDisconnect, RuntimeError, OSError) as e:
            self.log.debug("flush_incomplete", pending=self.send_queue.qsize(), error=repr(e))

    async def _close_upstream(self, code: int, reason: str = "") -> None:
        if self.upstream is None or self._upstream_closed:
            return
        self._upstream_closed = True
        try:
            await self.upstream.close(code=code, reason=reason)
        except (OSError, WebSocketException) as e:
            self.log.warning("upstream_close_failed", error=str(e))

    async def _close_subscriber(self, code: int, reason: str = "") -> None:
        if self._subscriber_closed:
            return
        self._subscriber_closed = True
        try:
            await self.subscriber.close(code=code, reason=reason)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            self.log.debug("subscriber_close_failed", error=str(e))

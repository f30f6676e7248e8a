"""
Diagnostic events shipped to the remote log collection service.

Events are validated against the collector's vocabulary before anything is
sent. Delivery is best-effort: `log()` only enqueues, a background worker does
the HTTP call, and sink failures are reported locally instead of raised.
"""
import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from .config import Settings
from .errors import InvalidLogEvent
from .observability import LOG_SINK_FAILURES

logger = logging.getLogger(__name__)

ALLOWED_STACKS = frozenset({"backend", "frontend"})
ALLOWED_LEVELS = frozenset({"debug", "info", "warn", "error", "fatal"})
ALLOWED_PACKAGES = frozenset({
    "cache", "controller", "cron_job", "db", "domain", "handler", "repository",
    "route", "service", "auth", "config", "middleware", "utils",
})

_STDLIB_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
}


@dataclass(frozen=True)
class LogEvent:
    stack: str
    level: str
    package: str
    message: str

    def to_payload(self) -> dict[str, str]:
        return {
            "stack": self.stack,
            "level": self.level,
            "package": self.package,
            "message": self.message,
        }


def _lowered(value, name: str) -> str:
    if not isinstance(value, str):
        raise InvalidLogEvent(f"Invalid {name}: {value!r}")
    return value.lower()


def validate_event(stack, level, component, message) -> LogEvent:
    stack = _lowered(stack, "stack")
    level = _lowered(level, "level")
    component = _lowered(component, "package")

    if stack not in ALLOWED_STACKS:
        raise InvalidLogEvent(f"Invalid stack: {stack}")
    if level not in ALLOWED_LEVELS:
        raise InvalidLogEvent(f"Invalid level: {level}")
    if component not in ALLOWED_PACKAGES:
        raise InvalidLogEvent(f"Invalid backend package: {component}")
    if not isinstance(message, str) or not message.strip():
        raise InvalidLogEvent("Invalid message")

    return LogEvent(stack=stack, level=level, package=component, message=message)


class EventLogger:
    def __init__(
        self,
        api_url: str,
        auth_token: str = "",
        timeout: float = 5.0,
        enabled: bool = True,
        queue_size: int = 1000,
        shutdown_timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url
        self.auth_token = auth_token
        self.timeout = timeout
        self.enabled = enabled
        self.shutdown_timeout = shutdown_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._worker: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @classmethod
    def from_settings(cls, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> "EventLogger":
        return cls(
            api_url=settings.LOG_API_URL,
            auth_token=settings.LOG_API_AUTH_TOKEN,
            timeout=settings.LOG_API_TIMEOUT_SECONDS,
            enabled=settings.LOG_SINK_ENABLED,
            queue_size=settings.LOG_QUEUE_SIZE,
            shutdown_timeout=settings.LOG_SHUTDOWN_TIMEOUT_SECONDS,
            transport=transport,
        )

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def _send(self, event: LogEvent) -> dict[str, Any]:
        if not self.enabled:
            return {"error": "Log sink disabled"}
        try:
            response = await self._get_client().post(
                self.api_url, json=event.to_payload(), headers=self._headers()
            )
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            LOG_SINK_FAILURES.inc()
            return {"error": str(e) or "Logging API failed"}

    async def submit(self, stack, level, component, message) -> dict[str, Any]:
        """Validate and deliver one event, returning the sink's reply or {"error": reason}."""
        event = validate_event(stack, level, component, message)
        return await self._send(event)

    def log(self, stack, level, component, message) -> None:
        """Validate, mirror to the process log and queue for delivery. Never blocks."""
        event = validate_event(stack, level, component, message)
        logger.log(
            _STDLIB_LEVELS[event.level],
            event.message,
            extra={"stack": event.stack, "package": event.package},
        )
        if not self.enabled:
            return

        # asyncio.Queue is not thread-safe; hop onto the worker's loop when
        # called from a threadpool handler
        loop = self._loop
        if loop is not None and not loop.is_closed():
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is not loop:
                loop.call_soon_threadsafe(self._enqueue, event)
                return
        self._enqueue(event)

    def _enqueue(self, event: LogEvent):
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            LOG_SINK_FAILURES.inc()
            logger.warning(f"Log queue full, dropping event: {event.message}")

    async def _run(self):
        while True:
            event = await self._queue.get()
            try:
                result = await self._send(event)
                if isinstance(result, dict) and "error" in result:
                    logger.warning(f"Log sink rejected event: {result['error']}")
            except Exception as e:
                logger.error(f"Error in log shipping worker: {e}")
            finally:
                self._queue.task_done()

    async def start(self):
        if self._worker is None:
            self._loop = asyncio.get_running_loop()
            self._worker = asyncio.create_task(self._run())

    async def stop(self):
        if self._worker is not None:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=self.shutdown_timeout)
            except asyncio.TimeoutError:
                pass
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None
            self._loop = None

        if self.pending:
            logger.warning(f"Shutting down with {self.pending} undelivered log events")

        if self._client is not None:
            await self._client.aclose()
            self._client = None

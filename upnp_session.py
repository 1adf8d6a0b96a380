"""
The single active cast session and the operations that drive it.

start_cast / stop_cast and every playback-sync command run under one asyncio
lock, so commands for a session reach the renderer in the order they were
emitted and a new cast never interleaves with the teardown of the old one.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import upnp_player as player
from cast_config import CastConfig
from upnp_devices import Device
from upnp_errors import CastError, NoActiveSession
from upnp_transport import Transport, TransportSelector

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    IDLE = "idle"
    ACTIVE = "active"


@dataclass
class Media:
    src: str
    title: str = ""
    current_time: float = 0.0
    duration: float = 0.0
    poster: str = ""

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Media":
        """Build from the page observer's video info ({title, src, currentTime, duration, poster})."""
        return cls(
            src=record["src"],
            title=record.get("title") or "",
            current_time=float(record.get("currentTime") or 0.0),
            duration=float(record.get("duration") or 0.0),
            poster=record.get("poster") or "",
        )


@dataclass
class PlaybackEvent:
    event_type: str
    current_time: float = 0.0
    paused: bool = False

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "PlaybackEvent":
        return cls(
            event_type=record.get("eventType", ""),
            current_time=float(record.get("currentTime") or 0.0),
            paused=bool(record.get("paused", False)),
        )


@dataclass
class Session:
    device: Device
    media: Media
    transport: Transport
    start_time: float = field(default_factory=time.time)


SYNCED_EVENTS = ("play", "pause", "seeking")


class SessionManager:
    """Owns at most one Session and serializes every command sent for it."""

    def __init__(
        self,
        selector: TransportSelector,
        config: CastConfig | None = None,
        on_error: Callable[[CastError, PlaybackEvent], None] | None = None,
    ) -> None:
        self._selector = selector
        self._config = config or CastConfig()
        self._on_error = on_error
        self._lock = asyncio.Lock()
        self._session: Session | None = None
        self._queue: asyncio.Queue[PlaybackEvent] | None = None
        self._worker: asyncio.Task | None = None

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def state(self) -> SessionState:
        return SessionState.ACTIVE if self._session is not None else SessionState.IDLE

    @property
    def is_active(self) -> bool:
        return self._session is not None

    async def start_cast(self, device: Device, media: Media) -> Session:
        """
        Cast media to device, replacing any current session.
        The old session is stopped best-effort first; a failure while connecting,
        loading or starting playback leaves the manager idle and is re-raised.
        """
        async with self._lock:
            if self._session is not None:
                await self._teardown(best_effort=True)

            try:
                transport = await self._selector.connect(device)
                await player.set_av_transport_uri(transport, media.src)
                await player.play(transport)
            except CastError as err:
                logger.warning("Casting to %s failed: %s", device.friendly_name, err)
                raise

            session = Session(device=device, media=media, transport=transport)
            self._session = session
            self._start_worker(session)
            logger.info("Casting %s to %s", media.src, device.friendly_name)
            return session

    async def stop_cast(self, force: bool = False) -> None:
        """
        Send Stop and end the session.
        The session is discarded even when Stop fails; the failure is re-raised
        unless force is set. Without a session this raises NoActiveSession, or
        does nothing when force is set.
        """
        async with self._lock:
            if self._session is None:
                if force:
                    return
                raise NoActiveSession("No active cast session")
            await self._teardown(best_effort=force)

    def on_playback_event(self, event: PlaybackEvent) -> bool:
        """
        Queue the command for a player event without waiting for the network.
        Returns False when the event was ignored (no session, unsynced type, queue full).
        """
        if self._session is None or self._queue is None:
            return False
        if event.event_type not in SYNCED_EVENTS:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Dropping %s event: command queue is full", event.event_type)
            return False
        return True

    async def drain(self) -> None:
        """Wait until every queued playback command has been sent or has failed."""
        if self._queue is not None:
            await self._queue.join()

    async def close(self) -> None:
        await self.stop_cast(force=True)

    def _start_worker(self, session: Session) -> None:
        self._queue = asyncio.Queue(maxsize=self._config.event_queue_size)
        self._worker = asyncio.create_task(self._run_events(session, self._queue))

    async def _stop_worker(self) -> None:
        worker, self._worker = self._worker, None
        queue, self._queue = self._queue, None
        if worker is not None:
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
        # release anyone blocked in drain() on the discarded queue
        while queue is not None and not queue.empty():
            queue.get_nowait()
            queue.task_done()

    async def _teardown(self, best_effort: bool) -> None:
        session, self._session = self._session, None
        await self._stop_worker()
        try:
            await player.stop(session.transport)
        except CastError as err:
            if not best_effort:
                raise
            logger.warning("Ignoring stop failure on %s: %s", session.device.friendly_name, err)
        finally:
            logger.info("Session on %s ended", session.device.friendly_name)

    async def _run_events(self, session: Session, queue: asyncio.Queue[PlaybackEvent]) -> None:
        while True:
            event = await queue.get()
            try:
                async with self._lock:
                    # superseded sessions drop whatever is left in their queue
                    if self._session is not session:
                        continue
                    await self._apply(session, event)
            except CastError as err:
                logger.warning("Syncing %s to %s failed: %s", event.event_type, session.device.friendly_name, err)
                if self._on_error is not None:
                    self._on_error(err, event)
            except Exception:
                logger.exception("Unexpected error syncing %s", event.event_type)
            finally:
                queue.task_done()

    async def _apply(self, session: Session, event: PlaybackEvent) -> None:
        if event.event_type == "play":
            await player.play(session.transport)
        elif event.event_type == "pause":
            await player.pause(session.transport)
        elif event.event_type == "seeking":
            await player.seek(session.transport, event.current_time)

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

import socketio
from socketio import exceptions as sio_exceptions

from quizroom.config import RoomConfig
from quizroom.errors import TransportError
from quizroom.models import ConnectionStatus

logger = logging.getLogger(__name__)

JOIN_ROOM = 'joinRoom'

# Disconnect reasons after which the Socket.IO client does not retry on its own
NO_RETRY_REASONS = ('server disconnect', 'client disconnect')


@dataclass(frozen=True)
class ReconnectPolicy:
    """Transport-level retry, handed to the Socket.IO client as-is.

    Beyond this the connection never retries on its own; recovering from a
    dead handle is a manual ``RoomConnection.reconnect()``.
    """

    enabled: bool = True
    attempts: int = 0  # 0 = unlimited
    delay: float = 1.0
    delay_max: float = 5.0
    randomization: float = 0.5

    @classmethod
    def none(cls) -> 'ReconnectPolicy':
        return cls(enabled=False)

    @classmethod
    def fixed(cls, delay: float, attempts: int = 0) -> 'ReconnectPolicy':
        return cls(attempts=attempts, delay=delay, delay_max=delay, randomization=0.0)

    @classmethod
    def capped_exponential(cls, delay: float = 1.0, delay_max: float = 5.0, attempts: int = 0) -> 'ReconnectPolicy':
        return cls(attempts=attempts, delay=delay, delay_max=delay_max)

    @classmethod
    def from_config(cls, config: RoomConfig) -> 'ReconnectPolicy':
        if not config.reconnect_enabled:
            return cls.none()
        return cls(
            attempts=config.reconnect_attempts,
            delay=config.reconnect_delay,
            delay_max=config.reconnect_delay_max,
        )

    def delay_for(self, attempt: int) -> Optional[float]:
        """Base delay before retry number ``attempt`` (1-based), jitter excluded.

        None means the transport gives up.
        """
        if not self.enabled or attempt < 1:
            return None
        if self.attempts and attempt > self.attempts:
            return None
        return min(self.delay * 2 ** (attempt - 1), self.delay_max)

    def client_kwargs(self) -> dict:
        return {
            'reconnection': self.enabled,
            'reconnection_attempts': self.attempts,
            'reconnection_delay': self.delay,
            'reconnection_delay_max': self.delay_max,
            'randomization_factor': self.randomization,
        }


def default_client_factory(policy: ReconnectPolicy):
    return socketio.AsyncClient(logger=False, engineio_logger=False, **policy.client_kwargs())


async def _call(handler, *args) -> None:
    result = handler(*args)
    if inspect.isawaitable(result):
        await result


class RoomConnection:
    """Push subscription to one room.

    Each ``connect()`` builds a fresh Socket.IO client (a handle). Every time
    a handle reaches the server, including transport-level reconnects, it asks
    to join the room and the server answers with one ``syncState`` snapshot.
    Handlers of a handle that was torn down are ignored, so late packets from
    an old socket never reach the state.
    """

    def __init__(self, config: RoomConfig, client_factory: Callable[[ReconnectPolicy], Any] = default_client_factory,
                 policy: Optional[ReconnectPolicy] = None):
        self.config = config
        self.policy = policy or ReconnectPolicy.from_config(config)
        self._client_factory = client_factory
        self._sio = None
        self._generation = 0
        self._subscribers: dict[str, list[Callable]] = {}
        self._status_listeners: list[Callable[[ConnectionStatus], None]] = []
        self.status = ConnectionStatus.DISCONNECTED
        self.last_error: Optional[TransportError] = None
        self.connect_count = 0

    @property
    def connected(self) -> bool:
        return self.status == ConnectionStatus.CONNECTED

    @property
    def generation(self) -> int:
        return self._generation

    def subscribe(self, event: str, handler: Callable) -> None:
        first = event not in self._subscribers
        self._subscribers.setdefault(event, []).append(handler)
        if first and self._sio is not None:
            self._bind_event(self._sio, event, self._generation)

    def subscribe_status(self, listener: Callable[[ConnectionStatus], None]) -> None:
        self._status_listeners.append(listener)

    def _set_status(self, status: ConnectionStatus) -> None:
        if status == self.status:
            return
        logger.info(f"[connection] room={self.config.room_id} {self.status.value} -> {status.value}")
        self.status = status
        for listener in list(self._status_listeners):
            listener(status)

    async def connect(self) -> bool:
        self._generation += 1
        generation = self._generation
        sio = self._client_factory(self.policy)
        self._sio = sio
        self._register_handlers(sio, generation)
        self._set_status(ConnectionStatus.CONNECTING)
        try:
            await sio.connect(
                self.config.base_url,
                socketio_path=self.config.socket_path,
                transports=['websocket', 'polling'],
                wait_timeout=self.config.request_timeout,
            )
        except (sio_exceptions.ConnectionError, OSError) as exc:
            if generation != self._generation:
                return False
            self.last_error = TransportError(str(exc) or 'connection failed')
            logger.warning(f"[connect-fail] room={self.config.room_id} error={exc}")
            self._set_status(ConnectionStatus.DISCONNECTED)
            return False
        return True

    async def reconnect(self) -> bool:
        logger.info(f"[reconnect] room={self.config.room_id} manual")
        await self.close()
        return await self.connect()

    async def close(self) -> None:
        # Detach before disconnecting so the old handle's disconnect is ignored
        self._generation += 1
        sio, self._sio = self._sio, None
        if sio is not None:
            try:
                await sio.disconnect()
            except (sio_exceptions.SocketIOError, OSError) as exc:
                logger.debug(f"[close] room={self.config.room_id} error={exc}")
        self._set_status(ConnectionStatus.DISCONNECTED)

    async def emit(self, event: str, data=None) -> bool:
        if self._sio is None or not self.connected:
            return False
        try:
            await self._sio.emit(event, data)
        except (sio_exceptions.SocketIOError, OSError) as exc:
            self.last_error = TransportError(str(exc))
            logger.warning(f"[emit-fail] room={self.config.room_id} event={event} error={exc}")
            return False
        return True

    def _register_handlers(self, sio, generation: int) -> None:
        async def on_connect():
            if generation != self._generation:
                return
            self.connect_count += 1
            self.last_error = None
            self._set_status(ConnectionStatus.CONNECTED)
            await sio.emit(JOIN_ROOM, self.config.room_id)

        async def on_disconnect(*args):
            # Local teardown bumps the generation first, so this is always a lost link
            if generation != self._generation:
                return
            reason = args[0] if args else None
            if self.policy.enabled and reason not in NO_RETRY_REASONS:
                logger.info(f"[reconnecting] room={self.config.room_id} reason={reason}")
                self._set_status(ConnectionStatus.CONNECTING)
            else:
                self._set_status(ConnectionStatus.DISCONNECTED)

        async def on_connect_error(data=None):
            if generation != self._generation:
                return
            self.last_error = TransportError(str(data) if data else 'connect_error')
            self._set_status(ConnectionStatus.DISCONNECTED)

        sio.on('connect', on_connect)
        sio.on('disconnect', on_disconnect)
        sio.on('connect_error', on_connect_error)
        for event in self._subscribers:
            self._bind_event(sio, event, generation)

    def _bind_event(self, sio, event: str, generation: int) -> None:
        async def dispatch(*args):
            if generation != self._generation:
                logger.debug(f"[event-discard] room={self.config.room_id} event={event} stale handle")
                return
            payload = args[0] if args else None
            for handler in list(self._subscribers.get(event, [])):
                await _call(handler, payload)

        sio.on(event, dispatch)

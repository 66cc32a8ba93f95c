import os
from dataclasses import dataclass


class Config:
    BASE_URL = os.environ.get('QUIZ_BASE_URL') or 'http://localhost:4000'
    API_PREFIX = os.environ.get('QUIZ_API_PREFIX', '/api')
    SOCKET_PATH = os.environ.get('QUIZ_SOCKET_PATH', 'socket.io')
    REQUEST_TIMEOUT_SEC = float(os.environ.get('REQUEST_TIMEOUT_SEC', '5'))
    # Pull fallback cadence (ms)
    POLL_INTERVAL_MS = int(os.environ.get('POLL_INTERVAL_MS', '500'))
    # Countdown refresh cadence (ms)
    TIMER_TICK_MS = int(os.environ.get('TIMER_TICK_MS', '250'))
    # Transport-level reconnect. 0 attempts means retry forever.
    RECONNECT_ENABLED = os.environ.get('RECONNECT_ENABLED', '1') != '0'
    RECONNECT_ATTEMPTS = int(os.environ.get('RECONNECT_ATTEMPTS', '0'))
    RECONNECT_DELAY_SEC = float(os.environ.get('RECONNECT_DELAY_SEC', '1'))
    RECONNECT_DELAY_MAX_SEC = float(os.environ.get('RECONNECT_DELAY_MAX_SEC', '5'))
    # Local identity store
    IDENTITY_DATABASE_URI = os.environ.get('IDENTITY_DATABASE_URL') or 'sqlite:///quizroom-identity.db'
    BETTING_POOL = int(os.environ.get('BETTING_POOL', '10'))
    DEFAULT_LANGUAGE = os.environ.get('DEFAULT_LANGUAGE', 'de')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


@dataclass(frozen=True)
class RoomConfig:
    """Explicit per-room settings handed to every component of one client.

    Built from a ``Config``-style class so several rooms can live side by
    side in one process (and in one test run) without shared globals.
    """

    room_id: str
    base_url: str
    api_prefix: str = '/api'
    socket_path: str = 'socket.io'
    request_timeout: float = 5.0
    poll_interval: float = 0.5
    timer_tick: float = 0.25
    reconnect_enabled: bool = True
    reconnect_attempts: int = 0
    reconnect_delay: float = 1.0
    reconnect_delay_max: float = 5.0
    identity_database_uri: str = 'sqlite:///quizroom-identity.db'
    betting_pool: int = 10
    default_language: str = 'de'
    log_level: str = 'INFO'

    @classmethod
    def from_object(cls, config_class, room_id: str) -> 'RoomConfig':
        room = normalize_room_id(room_id)
        if not room:
            raise ValueError('room_id is required')
        return cls(
            room_id=room,
            base_url=str(config_class.BASE_URL).rstrip('/'),
            api_prefix=getattr(config_class, 'API_PREFIX', '/api'),
            socket_path=getattr(config_class, 'SOCKET_PATH', 'socket.io'),
            request_timeout=float(getattr(config_class, 'REQUEST_TIMEOUT_SEC', 5)),
            poll_interval=int(getattr(config_class, 'POLL_INTERVAL_MS', 500)) / 1000.0,
            timer_tick=int(getattr(config_class, 'TIMER_TICK_MS', 250)) / 1000.0,
            reconnect_enabled=bool(getattr(config_class, 'RECONNECT_ENABLED', True)),
            reconnect_attempts=int(getattr(config_class, 'RECONNECT_ATTEMPTS', 0)),
            reconnect_delay=float(getattr(config_class, 'RECONNECT_DELAY_SEC', 1)),
            reconnect_delay_max=float(getattr(config_class, 'RECONNECT_DELAY_MAX_SEC', 5)),
            identity_database_uri=getattr(config_class, 'IDENTITY_DATABASE_URI', 'sqlite:///quizroom-identity.db'),
            betting_pool=int(getattr(config_class, 'BETTING_POOL', 10)),
            default_language=getattr(config_class, 'DEFAULT_LANGUAGE', 'de'),
            log_level=getattr(config_class, 'LOG_LEVEL', 'INFO'),
        )

    @property
    def api_base(self) -> str:
        return f"{self.base_url}{self.api_prefix}/rooms/{self.room_id}"


def normalize_room_id(room_id) -> str:
    """Room codes are short and case-insensitive; the server keys them upper-case."""
    return (room_id or '').strip().upper()

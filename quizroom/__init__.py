import logging

from quizroom.api import RoomApi
from quizroom.config import Config, RoomConfig
from quizroom.connection import ReconnectPolicy, RoomConnection, default_client_factory
from quizroom.identity import IdentityStore
from quizroom.participant import ParticipantController
from quizroom.services.session import PUSH_EVENTS, ReconciliationPoller, SessionState, TimerClock

logger = logging.getLogger(__name__)


class RoomClient:
    """All components of one participant device in one room, wired together."""

    def __init__(self, config: RoomConfig, api: RoomApi, state: SessionState, connection: RoomConnection,
                 identity: IdentityStore, timer: TimerClock, poller: ReconciliationPoller):
        self.config = config
        self.api = api
        self.state = state
        self.connection = connection
        self.identity = identity
        self.timer = timer
        self.poller = poller
        self.participant = ParticipantController(config, api, state, connection, identity, timer, poller)

    @property
    def status(self):
        return self.connection.status

    async def start(self) -> bool:
        connected = await self.connection.connect()
        self.timer.start()
        if self.state.joined:
            self.poller.start()
        return connected

    async def reconnect(self) -> bool:
        return await self.connection.reconnect()

    async def close(self) -> None:
        await self.poller.stop()
        await self.timer.stop()
        await self.connection.close()
        await self.api.aclose()
        logger.info(f"[client-close] room={self.config.room_id}")


def create_client(room_id: str, config_class=Config, transport=None, client_factory=None,
                  identity_store: IdentityStore = None, policy: ReconnectPolicy = None) -> RoomClient:
    config = RoomConfig.from_object(config_class, room_id)
    logging.getLogger('quizroom').setLevel(config.log_level)

    api = RoomApi(config, transport=transport)
    state = SessionState(config.room_id, default_language=config.default_language)
    connection = RoomConnection(config, client_factory=client_factory or default_client_factory, policy=policy)
    for event in PUSH_EVENTS:
        # Bind the event name now; the loop variable moves on
        connection.subscribe(event, lambda payload, event=event: state.apply(event, payload))

    identity = identity_store or IdentityStore(config.identity_database_uri)
    stored = identity.load(config.room_id)
    if stored is not None and stored.language:
        state.set_language(stored.language)

    timer = TimerClock(lambda: state.timer_window, tick_interval=config.timer_tick)
    # Refresh the countdown as soon as a timer event lands, not on the next tick
    state.subscribe(lambda _: timer.tick())
    poller = ReconciliationPoller(api, state, interval=config.poll_interval)
    logger.info(f"[client-create] room={config.room_id} base={config.base_url}")
    return RoomClient(config, api, state, connection, identity, timer, poller)


__all__ = ['Config', 'RoomClient', 'RoomConfig', 'create_client']

"""Test doubles that put the in-process room server behind the client's transports."""

import inspect

import httpx
from socketio import exceptions as sio_exceptions

from fake_room import socketio
from quizroom import Config


class TestConfig(Config):
    __test__ = False

    BASE_URL = 'http://quiz.test'
    API_PREFIX = '/api'
    POLL_INTERVAL_MS = 20
    TIMER_TICK_MS = 20
    RECONNECT_ENABLED = False
    IDENTITY_DATABASE_URI = 'sqlite://'
    LOG_LEVEL = 'DEBUG'


class HttpBridge:
    """httpx transport that answers from the Flask test client.

    Set ``offline`` to make every request fail like an unreachable host.
    """

    def __init__(self, flask_app):
        self.client = flask_app.test_client()
        self.offline = False
        self.requests = []
        self.transport = httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, request.url.path))
        if self.offline:
            raise httpx.ConnectError('server unreachable', request=request)
        res = self.client.open(
            request.url.raw_path.decode('ascii'),
            method=request.method,
            data=request.content,
            content_type=request.headers.get('content-type'),
        )
        return httpx.Response(
            res.status_code,
            content=res.get_data(),
            headers={'content-type': res.content_type},
        )


class BridgeSocket:
    """Async Socket.IO client stand-in backed by a Flask-SocketIO test client.

    Server packets are queued by the test client and only dispatched on
    ``pump()``, so tests decide exactly when pushes arrive.
    """

    def __init__(self, flask_app, policy):
        self.flask_app = flask_app
        self.policy = policy
        self.handlers = {}
        self.emitted = []
        self.test_client = None
        self.server_down = False

    def on(self, event, handler):
        self.handlers[event] = handler

    async def _trigger(self, event, *args):
        handler = self.handlers.get(event)
        if handler is None:
            return
        result = handler(*args)
        if inspect.isawaitable(result):
            await result

    @property
    def connected(self) -> bool:
        return self.test_client is not None and self.test_client.is_connected()

    async def connect(self, url, **kwargs):
        if self.server_down:
            raise sio_exceptions.ConnectionError('server unreachable')
        self.test_client = socketio.test_client(self.flask_app)
        await self._trigger('connect')

    async def emit(self, event, data=None):
        self.emitted.append((event, data))
        if not self.connected:
            raise sio_exceptions.BadNamespaceError('/ is not a connected namespace.')
        self.test_client.emit(event, data)
        await self.pump()

    async def disconnect(self):
        if self.connected:
            self.test_client.disconnect()
            await self._trigger('disconnect')

    async def pump(self) -> int:
        if not self.connected:
            return 0
        packets = self.test_client.get_received()
        for pkt in packets:
            await self._trigger(pkt['name'], *pkt['args'])
        return len(packets)

    async def drop(self):
        """Lose the transport without anyone asking for it."""
        if self.connected:
            self.test_client.disconnect()
        await self._trigger('disconnect', 'transport close')

    async def restore(self):
        """Transport-level reconnect of the same handle."""
        self.test_client = socketio.test_client(self.flask_app)
        await self._trigger('connect')

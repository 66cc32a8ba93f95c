import pytest

from fake_room import create_app
from quizroom import create_client
from quizroom.identity import IdentityStore
from support import BridgeSocket, HttpBridge, TestConfig


@pytest.fixture()
def flask_app():
    application = create_app()
    yield application


@pytest.fixture()
def server(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def http_bridge(flask_app):
    return HttpBridge(flask_app)


@pytest.fixture()
def sockets():
    return []


@pytest.fixture()
def socket_factory(flask_app, sockets):
    def factory(policy):
        sock = BridgeSocket(flask_app, policy)
        sockets.append(sock)
        return sock
    return factory


@pytest.fixture()
def identity_store(tmp_path):
    store = IdentityStore(f"sqlite:///{tmp_path / 'identity.db'}")
    yield store
    store.close()


@pytest.fixture()
def make_client(http_bridge, socket_factory, identity_store):
    def factory(room_id='MAIN', store=None):
        return create_client(
            room_id,
            config_class=TestConfig,
            transport=http_bridge.transport,
            client_factory=socket_factory,
            identity_store=store or identity_store,
        )
    return factory


@pytest.fixture()
def pump(sockets):
    """Deliver every queued server push to every live client."""
    async def deliver() -> int:
        total = 0
        for sock in sockets:
            total += await sock.pump()
        return total
    return deliver

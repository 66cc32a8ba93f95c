"""In-process quiz room server used by the test suite.

A small Flask + Flask-SocketIO app with the same HTTP and push surface as the
real room server, plus moderator endpoints so tests can drive a question.
"""

from flask import Flask
from flask_socketio import SocketIO

socketio = SocketIO(async_mode='threading')


class FakeRoomConfig:
    TESTING = True
    SECRET_KEY = 'fake-room'


def create_app(config_class=FakeRoomConfig):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.extensions['quiz_rooms'] = {}

    socketio.init_app(flask_app)

    from fake_room.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    from fake_room.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    return flask_app

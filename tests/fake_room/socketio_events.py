from flask import current_app
from flask_socketio import emit, join_room

from fake_room import socketio
from fake_room.rooms import get_room, room_channel, sync_payload


def handle_join_room(code):
    if not code:
        emit('error', {'message': 'room is required'})
        return
    room = get_room(code)
    join_room(room_channel(room['code']))
    emit('syncState', sync_payload(room))


def handle_participant_ready(data):
    data = data or {}
    code = data.get('roomId')
    pid = data.get('participantId')
    for room in _rooms_with(pid, code):
        room['participants'][pid]['isReady'] = bool(data.get('isReady'))


def _rooms_with(pid, code=None):
    store = current_app.extensions['quiz_rooms']
    candidates = [store[code.upper()]] if code and code.upper() in store else list(store.values())
    return [room for room in candidates if pid in room['participants']]


def register_socketio_handlers() -> None:
    socketio.on_event('joinRoom', handle_join_room)
    socketio.on_event('participant-ready', handle_participant_ready)

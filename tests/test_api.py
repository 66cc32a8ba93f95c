import httpx
import pytest

from quizroom.api import RoomApi
from quizroom.config import RoomConfig
from quizroom.errors import RequestFailed

from support import TestConfig


def api_with(handler, room='MAIN'):
    config = RoomConfig.from_object(TestConfig, room)
    return RoomApi(config, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_join_round_trip(http_bridge):
    api = RoomApi(RoomConfig.from_object(TestConfig, 'MAIN'), transport=http_bridge.transport)
    result = await api.join('Falcons')
    assert result.participant_id == 't1'
    assert result.created is True
    assert len(result.board) == 25
    again = await api.join('falcons')
    assert again.participant_id == 't1'
    assert again.created is False
    assert http_bridge.requests[0] == ('POST', '/api/rooms/MAIN/join')
    await api.aclose()


@pytest.mark.asyncio
async def test_error_body_becomes_message():
    def handler(request):
        return httpx.Response(404, json={'error': 'Team unknown'})

    api = api_with(handler)
    with pytest.raises(RequestFailed) as info:
        await api.submit_answer('t9', '42')
    assert info.value.status == 404
    assert info.value.message == 'Team unknown'
    assert info.value.unknown_participant is True
    assert info.value.retryable is False
    assert info.value.endpoint == '/api/rooms/MAIN/answer'
    await api.aclose()


@pytest.mark.asyncio
async def test_server_errors_are_retryable():
    def handler(request):
        return httpx.Response(503, text='unavailable')

    api = api_with(handler)
    with pytest.raises(RequestFailed) as info:
        await api.fetch_answers_snapshot()
    assert info.value.message == 'HTTP 503'
    assert info.value.retryable is True
    await api.aclose()


@pytest.mark.asyncio
async def test_transport_failure_has_no_status():
    def handler(request):
        raise httpx.ConnectError('refused', request=request)

    api = api_with(handler)
    with pytest.raises(RequestFailed) as info:
        await api.fetch_timer_status()
    assert info.value.status is None
    assert info.value.retryable is True
    await api.aclose()


@pytest.mark.asyncio
async def test_malformed_body():
    def handler(request):
        return httpx.Response(200, text='<html>')

    api = api_with(handler)
    with pytest.raises(RequestFailed) as info:
        await api.fetch_language()
    assert info.value.message == 'Malformed response'
    await api.aclose()


@pytest.mark.asyncio
async def test_join_without_id_is_a_failure():
    def handler(request):
        return httpx.Response(200, json={'name': 'Falcons'})

    api = api_with(handler)
    with pytest.raises(RequestFailed):
        await api.join('Falcons')
    await api.aclose()


@pytest.mark.asyncio
async def test_resume_sends_previous_id():
    seen = []

    def handler(request):
        seen.append(request.read())
        return httpx.Response(200, json={'participantId': 't1', 'name': 'Falcons', 'created': False})

    api = api_with(handler)
    result = await api.join('Falcons', previous_id='t1')
    assert b'"participantId"' in seen[0]
    assert result.created is False
    await api.aclose()

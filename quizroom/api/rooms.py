import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from quizroom.config import RoomConfig
from quizroom.errors import RequestFailed

logger = logging.getLogger(__name__)


@dataclass
class JoinResult:
    participant_id: str
    name: str
    board: Optional[list] = None
    created: bool = True


class RoomApi:
    """Room-scoped pull endpoints.

    Every call either returns decoded JSON or raises ``RequestFailed``;
    callers decide whether that becomes a status field or is swallowed.
    """

    def __init__(self, config: RoomConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._prefix = f"{config.api_prefix}/rooms/{config.room_id}"
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.request_timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        endpoint = f"{self._prefix}{path}"
        try:
            res = await self._client.request(method, endpoint, json=payload)
        except httpx.HTTPError as exc:
            logger.warning(f"[request-fail] {method} {endpoint} error={exc!r}")
            raise RequestFailed(f'Request failed: {exc}', endpoint=endpoint) from exc
        if res.is_error:
            message = f'HTTP {res.status_code}'
            try:
                data = res.json()
                if isinstance(data, dict) and isinstance(data.get('error'), str):
                    message = data['error']
            except ValueError:
                pass
            logger.info(f"[request-rejected] {method} {endpoint} status={res.status_code} message={message}")
            raise RequestFailed(message, status=res.status_code, endpoint=endpoint)
        try:
            return res.json()
        except ValueError as exc:
            raise RequestFailed('Malformed response', status=res.status_code, endpoint=endpoint) from exc

    async def join(self, team_name: str, previous_id: Optional[str] = None) -> JoinResult:
        payload = {'teamName': team_name}
        if previous_id:
            payload['participantId'] = previous_id
        data = await self._request('POST', '/join', payload)
        participant_id = data.get('participantId')
        if not participant_id:
            raise RequestFailed('Join response carried no participant id', endpoint=f"{self._prefix}/join")
        return JoinResult(
            participant_id=str(participant_id),
            name=data.get('name') or team_name,
            board=data.get('board'),
            created=bool(data.get('created', True)),
        )

    async def submit_answer(self, participant_id: str, value) -> dict:
        return await self._request('POST', '/answer', {'participantId': participant_id, 'answer': value})

    async def fetch_answers_snapshot(self) -> dict:
        return await self._request('GET', '/answers')

    async def fetch_bingo_board(self, participant_id: str) -> Optional[list]:
        data = await self._request('GET', f'/bingo/{participant_id}')
        return data.get('board')

    async def mark_bingo_cell(self, participant_id: str, cell_index: int) -> Optional[list]:
        data = await self._request('POST', '/bingo/mark', {'participantId': participant_id, 'cellIndex': cell_index})
        return data.get('board')

    async def fetch_language(self) -> Optional[str]:
        data = await self._request('GET', '/language')
        return data.get('language')

    async def set_language(self, language: str) -> dict:
        return await self._request('POST', '/language', {'language': language})

    async def fetch_timer_status(self) -> dict:
        return await self._request('GET', '/timer')

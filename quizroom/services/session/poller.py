import asyncio
import logging
from typing import Optional

from quizroom.errors import RequestFailed
from quizroom.models import PullSnapshot

logger = logging.getLogger(__name__)


class ReconciliationPoller:
    """Fixed-cadence pull of the answers snapshot.

    Runs regardless of push-channel health while a participant of interest is
    known. Failures keep the previous read model; there is no backoff and no
    breaker, the endpoint is read-only so retrying forever is harmless.
    """

    def __init__(self, api, state, interval: float = 0.5):
        self._api = api
        self._state = state
        self._interval = interval
        self._task: Optional[asyncio.Task] = None
        self._generation = 0
        self.failures = 0
        self.successes = 0
        self.last_error: Optional[RequestFailed] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._generation += 1
        self._task = asyncio.get_running_loop().create_task(self._run(self._generation))
        logger.info(f"[poll-start] room={self._state.session.room_id} interval={self._interval}s")

    async def stop(self) -> None:
        # Bump first so a result still in flight is dropped on arrival
        self._generation += 1
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info(f"[poll-stop] room={self._state.session.room_id}")

    async def poll_once(self, generation: Optional[int] = None) -> bool:
        generation = self._generation if generation is None else generation
        epoch = self._state.question_epoch
        try:
            payload = await self._api.fetch_answers_snapshot()
            snapshot = PullSnapshot.from_payload(payload)
        except (AttributeError, TypeError) as exc:
            self.failures += 1
            self.last_error = RequestFailed(f'Malformed snapshot: {exc}')
            logger.warning(f"[poll-fail] room={self._state.session.room_id} error={self.last_error}")
            return False
        except RequestFailed as exc:
            self.failures += 1
            self.last_error = exc
            logger.debug(f"[poll-fail] room={self._state.session.room_id} error={exc}")
            return False
        if generation != self._generation:
            logger.debug(f"[poll-discard] room={self._state.session.room_id} stale generation")
            return False
        self.successes += 1
        self.last_error = None
        self._state.apply_pull(snapshot, epoch=epoch)
        return True

    async def _run(self, generation: int) -> None:
        while generation == self._generation:
            if self._state.participant_id is not None:
                await self.poll_once(generation)
            await asyncio.sleep(self._interval)

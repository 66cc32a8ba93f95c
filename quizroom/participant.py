import logging
from typing import Optional

from quizroom.config import RoomConfig
from quizroom.errors import RequestFailed, ValidationError
from quizroom.models import ViewPhase
from quizroom.services.session.bingo import check_markable
from quizroom.services.session.state import team_language

logger = logging.getLogger(__name__)

PARTICIPANT_READY = 'participant-ready'


def validate_betting(allocations, pool: int, options: Optional[list] = None) -> list[int]:
    """Check a points-distribution answer; returns the allocations as a list.

    Every allocation must be a non-negative integer and together they must use
    exactly the pool.
    """
    if not isinstance(allocations, (list, tuple)) or not allocations:
        raise ValidationError('Betting answer must be a list of point allocations')
    if options and len(allocations) != len(options):
        raise ValidationError(f'Expected {len(options)} allocations, got {len(allocations)}')
    for points in allocations:
        if not isinstance(points, int) or isinstance(points, bool) or points < 0:
            raise ValidationError('Allocations must be non-negative whole numbers')
    total = sum(allocations)
    if total != pool:
        raise ValidationError(f'Allocations must add up to {pool} (got {total})')
    return list(allocations)


class ParticipantController:
    """User-initiated operations of one participant device.

    Local preconditions raise ``ValidationError`` before anything is sent.
    Network failures never raise: they land in ``last_error`` and the call
    returns False.
    """

    def __init__(self, config: RoomConfig, api, state, connection, identity, timer, poller):
        self.config = config
        self.api = api
        self.state = state
        self.connection = connection
        self.identity = identity
        self.timer = timer
        self.poller = poller
        self.last_error: Optional[RequestFailed] = None
        self.is_ready = False
        self._joining = False
        self._submitting = False
        self._marking = False
        self._removal_handled = False
        state.subscribe(self._on_state_change)

    @property
    def room_id(self) -> str:
        return self.config.room_id

    # ---- join ----

    def resume_available(self):
        """Stored identity for this room if it carries a participant id, else None."""
        row = self.identity.load(self.room_id)
        if row is None or not row.participant_id:
            return None
        return row

    async def join(self, team_name: str, resume: bool = False) -> bool:
        name = (team_name or '').strip()
        if not name:
            raise ValidationError('Team name is required')
        if self._joining:
            raise ValidationError('Join already in progress')
        previous_id = None
        if resume:
            stored = self.resume_available()
            previous_id = stored.participant_id if stored else None
        self._joining = True
        try:
            result = await self.api.join(name, previous_id)
        except RequestFailed as exc:
            self.last_error = exc
            logger.warning(f"[join-fail] room={self.room_id} name={name} error={exc}")
            return False
        finally:
            self._joining = False
        self.last_error = None
        if previous_id and previous_id != result.participant_id:
            logger.info(f"[join-reissued] room={self.room_id} old={previous_id} new={result.participant_id}")
        elif not result.created:
            logger.info(f"[join-resumed] room={self.room_id} participant={result.participant_id}")
        self.identity.save(self.room_id, result.name, result.participant_id)
        self.state.apply_join(result.participant_id, result.name, result.board)
        self.is_ready = False
        self._removal_handled = False
        stored = self.identity.load(self.room_id)
        if stored is not None and stored.language:
            self.state.set_language(stored.language)
        if self.state.board is None:
            await self.refresh_board()
        self.poller.start()
        return True

    def _on_state_change(self, state) -> None:
        # Removed by the moderator: the stored id would only be rejected
        if state.removed and not self._removal_handled:
            self._removal_handled = True
            self.identity.forget_participant(self.room_id)

    def _forget_identity(self) -> None:
        logger.info(f"[participant-unknown] room={self.room_id} participant={self.state.participant_id}")
        self.identity.forget_participant(self.room_id)
        self.state.leave()

    # ---- answers ----

    async def submit_answer(self, value) -> bool:
        state = self.state
        if not state.joined:
            raise ValidationError('Join the room first')
        if state.view_phase != ViewPhase.ANSWERING:
            raise ValidationError('Answers are not being accepted right now')
        if self.timer.expired:
            raise ValidationError("Time's up")
        if self._submitting:
            raise ValidationError('Answer already being sent')
        if state.has_answer_for_current_question():
            raise ValidationError('Answer already submitted')
        question = state.active_question or {}
        if question.get('mechanic') == 'betting':
            pool = question.get('pointsPool') or self.config.betting_pool
            value = validate_betting(value, pool, question.get('options'))
        elif value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError('Answer is empty')

        owner = state.participant_id
        question_id = state.session.question_id
        self._submitting = True
        try:
            await self.api.submit_answer(owner, value)
        except RequestFailed as exc:
            self.last_error = exc
            logger.warning(f"[submit-fail] room={self.room_id} participant={owner} error={exc}")
            if exc.unknown_participant and state.participant_id == owner:
                self._forget_identity()
            return False
        finally:
            self._submitting = False
        self.last_error = None
        if state.participant_id != owner:
            logger.info(f"[submit-late] room={self.room_id} participant={owner} left before ack")
            return False
        if state.session.question_id != question_id:
            logger.info(f"[submit-late] room={self.room_id} question={question_id} moved on before ack")
            return True
        state.acknowledge_submission(value)
        return True

    # ---- bingo ----

    async def mark_bingo(self, cell_index: int) -> bool:
        state = self.state
        if self._marking:
            raise ValidationError('Mark already being sent')
        if not state.can_mark:
            raise ValidationError('No bingo mark available')
        check_markable(state.board, cell_index, state.session.question_category)
        # Eligibility is spent on the attempt, whatever the outcome
        state.consume_mark()
        owner = state.participant_id
        self._marking = True
        try:
            board = await self.api.mark_bingo_cell(owner, cell_index)
        except RequestFailed as exc:
            self.last_error = exc
            logger.warning(f"[mark-fail] room={self.room_id} cell={cell_index} error={exc}")
            return False
        finally:
            self._marking = False
        self.last_error = None
        if state.participant_id != owner:
            logger.info(f"[mark-late] room={self.room_id} participant={owner} left before the board came back")
            return False
        logger.info(f"[mark] room={self.room_id} participant={owner} cell={cell_index}")
        return state.apply_board(board)

    async def refresh_board(self) -> bool:
        if not self.state.joined:
            return False
        owner = self.state.participant_id
        try:
            board = await self.api.fetch_bingo_board(owner)
        except RequestFailed as exc:
            self.last_error = exc
            logger.debug(f"[board-fail] room={self.room_id} error={exc}")
            return False
        if self.state.participant_id != owner:
            logger.info(f"[board-late] room={self.room_id} participant={owner} left before the board came back")
            return False
        if board is None:
            return False
        return self.state.apply_board(board)

    # ---- misc ----

    async def toggle_ready(self) -> bool:
        if self.state.view_phase != ViewPhase.WAITING_FOR_QUESTION:
            raise ValidationError('Ready can only be toggled while waiting for a question')
        is_ready = not self.is_ready
        sent = await self.connection.emit(
            PARTICIPANT_READY, {'participantId': self.state.participant_id, 'isReady': is_ready}
        )
        if sent:
            self.is_ready = is_ready
        return sent

    async def set_language(self, language: str) -> str:
        language = team_language(language)
        self.identity.save_language(self.room_id, language)
        self.state.set_language(language)
        try:
            await self.api.set_language(language)
        except RequestFailed as exc:
            logger.debug(f"[language-fail] room={self.room_id} error={exc}")
        return language

    async def refresh_timer(self) -> bool:
        try:
            payload = await self.api.fetch_timer_status()
        except RequestFailed as exc:
            self.last_error = exc
            logger.debug(f"[timer-fail] room={self.room_id} error={exc}")
            return False
        self.state.apply_timer_status(payload)
        self.timer.tick()
        return True

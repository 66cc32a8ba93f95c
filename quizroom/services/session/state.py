"""Canonical session view for one client, folded from push and pull inputs.

Every change to session fields goes through a method of ``SessionState``;
the timer and the poller only read it (the poller hands its snapshot over
through ``apply_pull``, which never touches phase or the active question).
Events are applied in arrival order and the newest arrival wins per field.
"""

import logging
from typing import Any, Callable, Optional

from quizroom.errors import StaleAuthority
from quizroom.models import (
    AnswerRecord,
    BingoCell,
    Phase,
    PullSnapshot,
    Session,
    ViewPhase,
    board_from_payload,
)
from quizroom.services.session.timer import now_epoch_ms, window_from_event

logger = logging.getLogger(__name__)

SYNC_STATE = 'syncState'
QUESTION_STARTED = 'question-started'
TIMER_STARTED = 'timer-started'
TIMER_STOPPED = 'timer-stopped'
EVALUATION_STARTED = 'evaluation-started'
ANSWERS_EVALUATED = 'answers-evaluated'
PARTICIPANT_RESULT = 'participant-result'
PARTICIPANT_REMOVED = 'participant-removed'
LANGUAGE_CHANGED = 'language-changed'

PUSH_EVENTS = (
    SYNC_STATE,
    QUESTION_STARTED,
    TIMER_STARTED,
    TIMER_STOPPED,
    EVALUATION_STARTED,
    ANSWERS_EVALUATED,
    PARTICIPANT_RESULT,
    PARTICIPANT_REMOVED,
    LANGUAGE_CHANGED,
)

# Team devices have no bilingual layout; 'both' falls back to German
LANGUAGE_FALLBACKS = {'both': 'de'}

_RECORD_FIELDS = {
    'answer': 'submitted_value',
    'value': 'submitted_value',
    'isCorrect': 'is_correct',
    'deviation': 'deviation',
    'bestDeviation': 'best_deviation',
}


def team_language(language: str) -> str:
    return LANGUAGE_FALLBACKS.get(language, language)


def _question_id(question) -> Optional[str]:
    if not question:
        return None
    return question.get('id')


class SessionState:
    def __init__(self, room_id: str, default_language: str = 'de', clock: Callable[[], int] = now_epoch_ms):
        self.session = Session(room_id=room_id, language=default_language)
        self._clock = clock
        self.view_phase = ViewPhase.NOT_JOINED
        self.participant_id: Optional[str] = None
        self.participant_name: Optional[str] = None
        self.removed = False
        # Push-sourced records for the current question, keyed by participant id
        self.answers: dict[str, AnswerRecord] = {}
        self.board: Optional[list[BingoCell]] = None
        self.pull = PullSnapshot()
        self.pull_epoch: Optional[int] = None
        self.question_epoch = 0
        # Last snapshot that contradicted what this device believes
        self.last_conflict: Optional[StaleAuthority] = None
        # Per-question locals
        self.submitted = False
        self.submitted_value: Any = None
        self.result_definitive = False
        self._mark_granted = False
        self._mark_consumed: set = set()
        self._listeners: list[Callable[['SessionState'], None]] = []
        self._handlers = {
            SYNC_STATE: self._on_sync_state,
            QUESTION_STARTED: self._on_question_started,
            TIMER_STARTED: self._on_timer_started,
            TIMER_STOPPED: self._on_timer_stopped,
            EVALUATION_STARTED: self._on_evaluation_started,
            ANSWERS_EVALUATED: self._on_answers_evaluated,
            PARTICIPANT_RESULT: self._on_participant_result,
            PARTICIPANT_REMOVED: self._on_participant_removed,
            LANGUAGE_CHANGED: self._on_language_changed,
        }

    # ---- observation ----

    def subscribe(self, listener: Callable[['SessionState'], None]) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    @property
    def joined(self) -> bool:
        return self.participant_id is not None

    @property
    def phase(self) -> Phase:
        return self.session.phase

    @property
    def active_question(self) -> Optional[dict]:
        return self.session.active_question

    @property
    def timer_window(self):
        return self.session.timer_window

    @property
    def own_record(self) -> Optional[AnswerRecord]:
        if self.participant_id is None:
            return None
        return self.answers.get(self.participant_id)

    @property
    def can_mark(self) -> bool:
        record = self.own_record
        return (
            self.joined
            and self.result_definitive
            and self._mark_granted
            and record is not None
            and record.is_correct is True
            and self.board is not None
            and self.session.question_id not in self._mark_consumed
        )

    @property
    def pull_is_current(self) -> bool:
        return self.pull_epoch == self.question_epoch

    def has_answer_for_current_question(self) -> bool:
        if self.submitted:
            return True
        if self.participant_id is None or not self.pull_is_current:
            return False
        return self.participant_id in self.pull.answers

    def to_dict(self):
        return {
            'session': self.session.to_dict(),
            'viewPhase': self.view_phase.value,
            'participantId': self.participant_id,
            'answers': {pid: r.to_dict() for pid, r in sorted(self.answers.items())},
            'board': [c.to_dict() for c in self.board] if self.board else None,
            'submitted': self.submitted,
            'resultDefinitive': self.result_definitive,
            'canMark': self.can_mark,
        }

    # ---- push events ----

    def apply(self, event: str, payload: Optional[dict] = None) -> None:
        handler = self._handlers.get(event)
        if handler is None:
            logger.debug(f"[event-skip] room={self.session.room_id} event={event}")
            return
        logger.debug(f"[event] room={self.session.room_id} event={event}")
        handler(payload or {})
        self._notify()

    def _on_sync_state(self, payload: dict) -> None:
        question = payload.get('question')
        self._set_question(question)
        if 'questionMeta' in payload and payload['questionMeta'] is not None:
            self.session.question_meta = payload['questionMeta']
        self.session.phase = Phase.from_wire(payload.get('questionPhase'), has_question=bool(question))
        if payload.get('language'):
            self.session.language = team_language(payload['language'])
        if 'timerEndsAt' in payload:
            ends_at = payload.get('timerEndsAt')
            if ends_at is None:
                self.session.timer_window = None
            elif self.session.timer_window is None or self.session.timer_window.ends_at_epoch_ms != int(ends_at):
                self.session.timer_window = window_from_event(ends_at, payload.get('timerDurationMs'), self._clock())
        self._set_view(self._derive_view())

    def _on_question_started(self, payload: dict) -> None:
        question = payload.get('question')
        self._set_question(question)
        if payload.get('meta') is not None:
            self.session.question_meta = payload['meta']
        if question:
            self.session.phase = Phase.ANSWERING
        else:
            self.session.phase = Phase.NO_QUESTION
        self._set_view(self._derive_view())

    def _on_timer_started(self, payload: dict) -> None:
        window = window_from_event(payload.get('endsAt'), payload.get('durationMs'), self._clock())
        if window is not None:
            self.session.timer_window = window

    def _on_timer_stopped(self, payload: dict) -> None:
        self.session.timer_window = None

    def _on_evaluation_started(self, payload: dict) -> None:
        self.session.phase = Phase.EVALUATING
        if self.view_phase in (ViewPhase.ANSWERING, ViewPhase.OPTIMISTIC_EVALUATING):
            self._set_view(ViewPhase.CONFIRMED_EVALUATING)

    def _on_answers_evaluated(self, payload: dict) -> None:
        self.session.phase = Phase.EVALUATING
        if payload.get('solution') is not None:
            self.session.solution = payload['solution']
        for pid, entry in (payload.get('answers') or {}).items():
            self._merge_record(str(pid), entry or {}, provisional=True)
        record = self.own_record
        if record is not None and record.is_correct is False:
            self._mark_granted = False
        if self.view_phase in (ViewPhase.ANSWERING, ViewPhase.OPTIMISTIC_EVALUATING):
            self._set_view(ViewPhase.CONFIRMED_EVALUATING)

    def _on_participant_result(self, payload: dict) -> None:
        pid = payload.get('participantId')
        if pid is None:
            return
        pid = str(pid)
        if payload.get('solution') is not None:
            self.session.solution = payload['solution']
        record = self._merge_record(pid, payload, provisional=False)
        if pid != self.participant_id or self.session.active_question is None:
            return
        self.result_definitive = True
        if record.is_correct is True:
            if self.session.question_id not in self._mark_consumed:
                self._mark_granted = True
        else:
            self._mark_granted = False
        self._set_view(ViewPhase.REVEALED)

    def _on_participant_removed(self, payload: dict) -> None:
        pid = payload.get('participantId')
        if pid is None:
            return
        pid = str(pid)
        self.answers.pop(pid, None)
        if pid == self.participant_id:
            logger.info(f"[removed] room={self.session.room_id} participant={pid}")
            self.removed = True
            self.leave()

    def _on_language_changed(self, payload: dict) -> None:
        if payload.get('language'):
            self.session.language = team_language(payload['language'])

    # ---- local and pull inputs ----

    def apply_join(self, participant_id: str, name: str, board=None) -> None:
        participant_id = str(participant_id)
        if self.participant_id != participant_id:
            # New or reissued id: local per-question knowledge belonged to someone else
            self._reset_question_locals()
        self.participant_id = participant_id
        self.participant_name = name
        self.removed = False
        parsed = board_from_payload(board)
        if parsed is not None:
            self.board = parsed
        self._set_view(self._derive_view())
        self._notify()

    def leave(self) -> None:
        self.participant_id = None
        self.board = None
        self._reset_question_locals()
        self._set_view(ViewPhase.NOT_JOINED)
        self._notify()

    def acknowledge_submission(self, value) -> None:
        """Server accepted our answer for the current question."""
        self.submitted = True
        self.submitted_value = value
        if self.participant_id is not None:
            record = self.answers.get(self.participant_id)
            if record is None:
                self.answers[self.participant_id] = AnswerRecord(participant_id=self.participant_id, submitted_value=value)
            elif record.submitted_value is None:
                record.submitted_value = value
        if self.view_phase == ViewPhase.ANSWERING:
            self._set_view(ViewPhase.OPTIMISTIC_EVALUATING)
        self._notify()

    def apply_board(self, board) -> bool:
        parsed = board_from_payload(board)
        if parsed is None:
            logger.warning(f"[board-invalid] room={self.session.room_id} participant={self.participant_id}")
            return False
        self.board = parsed
        self._notify()
        return True

    def consume_mark(self) -> None:
        self._mark_consumed.add(self.session.question_id)
        self._mark_granted = False
        self._notify()

    def apply_pull(self, snapshot: PullSnapshot, epoch: Optional[int] = None) -> None:
        self.pull = snapshot
        self.pull_epoch = self.question_epoch if epoch is None else epoch
        if self.pull_is_current and self.participant_id is not None:
            if self.participant_id in snapshot.answers and not self.submitted:
                self.last_conflict = StaleAuthority('server holds an answer not acknowledged locally')
                logger.debug(f"[stale] room={self.session.room_id} {self.last_conflict}")
        self._notify()

    def apply_timer_status(self, payload: dict) -> None:
        timer = (payload or {}).get('timer') or {}
        if timer.get('running') and timer.get('endsAt') is not None:
            self._on_timer_started({'endsAt': timer['endsAt'], 'durationMs': timer.get('durationMs')})
        else:
            self._on_timer_stopped({})
        self._notify()

    def set_language(self, language: str) -> None:
        self.session.language = team_language(language)
        self._notify()

    # ---- helpers ----

    def _set_question(self, question) -> None:
        if _question_id(question) != self.session.question_id or (question is None) != (self.session.active_question is None):
            self._reset_question_locals()
            self.answers = {}
            self.session.solution = None
            self.question_epoch += 1
            self.last_conflict = None
        self.session.active_question = question

    def _reset_question_locals(self) -> None:
        self.submitted = False
        self.submitted_value = None
        self.result_definitive = False
        self._mark_granted = False

    def _merge_record(self, pid: str, payload: dict, provisional: bool) -> AnswerRecord:
        record = self.answers.get(pid)
        if record is None:
            record = AnswerRecord(participant_id=pid)
            self.answers[pid] = record
        previous = record.is_correct
        for key, attr in _RECORD_FIELDS.items():
            value = payload.get(key)
            if value is not None:
                setattr(record, attr, value)
        if not provisional and not record.provisional and previous is not None and record.is_correct != previous:
            record.is_overridden = True
        record.provisional = provisional
        return record

    def _derive_view(self) -> ViewPhase:
        if self.participant_id is None:
            return ViewPhase.NOT_JOINED
        phase = self.session.phase
        if phase == Phase.ANSWERING:
            return ViewPhase.OPTIMISTIC_EVALUATING if self.submitted else ViewPhase.ANSWERING
        if phase == Phase.EVALUATING:
            return ViewPhase.REVEALED if self.result_definitive else ViewPhase.CONFIRMED_EVALUATING
        if phase == Phase.REVEALED:
            return ViewPhase.REVEALED
        return ViewPhase.WAITING_FOR_QUESTION

    def _set_view(self, view: ViewPhase) -> None:
        if view != self.view_phase:
            logger.info(
                f"[phase] room={self.session.room_id} participant={self.participant_id} "
                f"{self.view_phase.value} -> {view.value}"
            )
            self.view_phase = view

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

BOARD_SIZE = 25


class Phase(str, Enum):
    """Room-level phase of the current question."""
    NO_QUESTION = 'no_question'
    ANSWERING = 'answering'
    EVALUATING = 'evaluating'
    REVEALED = 'revealed'

    @classmethod
    def from_wire(cls, value, has_question: bool = True) -> 'Phase':
        if not has_question:
            return cls.NO_QUESTION
        if value == 'answering':
            return cls.ANSWERING
        if value in ('evaluated', 'evaluating'):
            return cls.EVALUATING
        if value == 'revealed':
            return cls.REVEALED
        return cls.NO_QUESTION


class ViewPhase(str, Enum):
    """Phase as seen by one participant device."""
    NOT_JOINED = 'not_joined'
    WAITING_FOR_QUESTION = 'waiting_for_question'
    ANSWERING = 'answering'
    OPTIMISTIC_EVALUATING = 'optimistic_evaluating'
    CONFIRMED_EVALUATING = 'confirmed_evaluating'
    REVEALED = 'revealed'

    @property
    def display(self) -> str:
        # Both evaluating sub-states look the same on screen
        if self in (ViewPhase.OPTIMISTIC_EVALUATING, ViewPhase.CONFIRMED_EVALUATING):
            return 'evaluating'
        return self.value

    @property
    def is_evaluating(self) -> bool:
        return self.display == 'evaluating'


class ConnectionStatus(str, Enum):
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    DISCONNECTED = 'disconnected'


@dataclass
class TimerWindow:
    ends_at_epoch_ms: int
    total_duration_seconds: float

    def to_dict(self):
        return {
            'endsAt': self.ends_at_epoch_ms,
            'totalDurationSeconds': self.total_duration_seconds,
        }


@dataclass
class AnswerRecord:
    participant_id: str
    submitted_value: Any = None
    is_correct: Optional[bool] = None
    deviation: Optional[float] = None
    best_deviation: Optional[float] = None
    is_overridden: bool = False
    provisional: bool = False

    @classmethod
    def from_payload(cls, participant_id: str, payload: dict) -> 'AnswerRecord':
        payload = payload or {}
        value = payload.get('answer', payload.get('value'))
        return cls(
            participant_id=participant_id,
            submitted_value=value,
            is_correct=payload.get('isCorrect'),
            deviation=payload.get('deviation'),
            best_deviation=payload.get('bestDeviation'),
        )

    def to_dict(self):
        return {
            'participantId': self.participant_id,
            'value': self.submitted_value,
            'isCorrect': self.is_correct,
            'deviation': self.deviation,
            'bestDeviation': self.best_deviation,
            'isOverridden': self.is_overridden,
            'provisional': self.provisional,
        }


@dataclass
class Participant:
    id: str
    name: str
    is_ready: bool = False
    connection_status: str = 'unknown'

    @classmethod
    def from_payload(cls, payload: dict) -> 'Participant':
        connected = payload.get('connected')
        if connected is None:
            status = payload.get('connectionStatus', 'unknown')
        else:
            status = 'connected' if connected else 'disconnected'
        return cls(
            id=str(payload.get('id')),
            name=payload.get('name') or '',
            is_ready=bool(payload.get('isReady', False)),
            connection_status=status,
        )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'isReady': self.is_ready,
            'connectionStatus': self.connection_status,
        }


@dataclass
class BingoCell:
    category: str
    marked: bool = False

    def to_dict(self):
        return {'category': self.category, 'marked': self.marked}


def board_from_payload(payload) -> Optional[list[BingoCell]]:
    """Parse a server board. Anything that is not a 25-cell list is rejected as None."""
    if not isinstance(payload, list) or len(payload) != BOARD_SIZE:
        return None
    return [BingoCell(category=c.get('category'), marked=bool(c.get('marked'))) for c in payload]


@dataclass
class Session:
    room_id: str
    phase: Phase = Phase.NO_QUESTION
    active_question: Optional[dict] = None
    question_meta: Optional[dict] = None
    timer_window: Optional[TimerWindow] = None
    language: str = 'de'
    solution: Optional[str] = None

    @property
    def question_id(self) -> Optional[str]:
        if not self.active_question:
            return None
        return self.active_question.get('id')

    @property
    def question_category(self) -> Optional[str]:
        if not self.active_question:
            return None
        category = self.active_question.get('category')
        if category is None and self.question_meta:
            category = self.question_meta.get('categoryKey')
        return category

    def to_dict(self):
        return {
            'roomId': self.room_id,
            'phase': self.phase.value,
            'activeQuestion': self.active_question,
            'questionMeta': self.question_meta,
            'timer': self.timer_window.to_dict() if self.timer_window else None,
            'language': self.language,
            'solution': self.solution,
        }


@dataclass
class PullSnapshot:
    """Read model fed only by the reconciliation poller."""
    answers: dict[str, AnswerRecord] = field(default_factory=dict)
    participants: dict[str, Participant] = field(default_factory=dict)
    solution: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict) -> 'PullSnapshot':
        payload = payload or {}
        answers = {
            str(pid): AnswerRecord.from_payload(str(pid), entry)
            for pid, entry in (payload.get('answers') or {}).items()
        }
        raw_participants = payload.get('participants') or payload.get('teams') or {}
        if isinstance(raw_participants, dict):
            raw_participants = list(raw_participants.values())
        participants = {}
        for entry in raw_participants:
            p = Participant.from_payload(entry)
            participants[p.id] = p
        return cls(answers=answers, participants=participants, solution=payload.get('solution'))

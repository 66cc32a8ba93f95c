"""Durable per-room identity of this device.

One row per room code: the team name the user typed, the participant id the
server handed back, and the language preference. Nothing here is
authoritative; the id is only offered back to the server on a resume join.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, String, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from quizroom.config import normalize_room_id

logger = logging.getLogger(__name__)

Base = declarative_base()


def _utcnow():
    return datetime.now(timezone.utc)


class StoredIdentity(Base):
    __tablename__ = 'room_identity'
    room_id = Column(String(32), primary_key=True)
    name = Column(String(128), nullable=True)
    participant_id = Column(String(64), nullable=True)
    language = Column(String(8), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            'roomId': self.room_id,
            'name': self.name,
            'participantId': self.participant_id,
            'language': self.language,
        }


class IdentityStore:
    def __init__(self, database_uri: str = 'sqlite:///quizroom-identity.db'):
        self.database_uri = database_uri
        self._engine = create_engine(database_uri)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)

    def close(self) -> None:
        self._engine.dispose()

    def load(self, room_id: str) -> Optional[StoredIdentity]:
        with self._session_factory() as session:
            return session.get(StoredIdentity, normalize_room_id(room_id))

    def _upsert(self, room_id: str, **fields) -> StoredIdentity:
        room = normalize_room_id(room_id)
        with self._session_factory() as session:
            row = session.get(StoredIdentity, room)
            if row is None:
                row = StoredIdentity(room_id=room)
                session.add(row)
            for key, value in fields.items():
                setattr(row, key, value)
            session.commit()
            return row

    def save(self, room_id: str, name: str, participant_id: str) -> StoredIdentity:
        row = self._upsert(room_id, name=name, participant_id=participant_id)
        logger.info(f"[identity-save] room={row.room_id} participant={participant_id}")
        return row

    def save_language(self, room_id: str, language: str) -> StoredIdentity:
        return self._upsert(room_id, language=language)

    def forget_participant(self, room_id: str) -> None:
        """Drop the stored id but keep the name, so the user can rejoin by name."""
        room = normalize_room_id(room_id)
        with self._session_factory() as session:
            row = session.get(StoredIdentity, room)
            if row is None or row.participant_id is None:
                return
            row.participant_id = None
            session.commit()
        logger.info(f"[identity-forget] room={room}")

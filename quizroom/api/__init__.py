"""HTTP pull endpoints of a quiz room."""

from .rooms import JoinResult, RoomApi

__all__ = ['JoinResult', 'RoomApi']

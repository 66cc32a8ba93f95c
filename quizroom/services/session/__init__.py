"""Session services: state folding, countdown, pull reconciliation and bingo rules.

This package holds the transport-free logic of a room client. The push
connection and the HTTP client feed it; nothing in here opens sockets.
"""

from .poller import ReconciliationPoller
from .state import PUSH_EVENTS, SessionState
from .timer import TimerClock, TimerReading

__all__ = ['PUSH_EVENTS', 'ReconciliationPoller', 'SessionState', 'TimerClock', 'TimerReading']

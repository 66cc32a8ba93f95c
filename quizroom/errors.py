"""Error types shared by the room client components.

Transport and request failures are captured where they happen and turned into
status fields (connection status, ``last_error``); only ``ValidationError`` is
raised to callers, and always before any network call is made.
"""


class QuizRoomError(Exception):
    """Base class for every error raised or recorded by quizroom."""


class TransportError(QuizRoomError):
    """The push channel could not be reached or was dropped."""


class RequestFailed(QuizRoomError):
    """A single pull request failed.

    ``status`` is the HTTP status when the server answered, ``None`` when the
    request never got a response.
    """

    def __init__(self, message: str, status: int | None = None, endpoint: str | None = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.endpoint = endpoint

    @property
    def retryable(self) -> bool:
        return self.status is None or self.status >= 500

    @property
    def unknown_participant(self) -> bool:
        return self.status == 404


class ValidationError(QuizRoomError):
    """A local precondition failed; nothing was sent."""


class StaleAuthority(QuizRoomError):
    """A snapshot contradicted local belief. Logged and kept as ``last_conflict``, never raised."""

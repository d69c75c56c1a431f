class QuizError(Exception):
    """Base class for errors a caller can recover from."""


class InputError(QuizError, ValueError):
    """The request is malformed or invalid for the current state."""


class AccessError(QuizError):
    """The caller is not allowed to touch the resource."""


class PersistenceError(Exception):
    """Writing the snapshot to disk failed."""

"""Error types raised by the executor reconciler."""


class TiflowOperatorError(Exception):
    """Base class for reconciler errors."""


class InvalidSpecError(TiflowOperatorError):
    """Raised when the cluster spec cannot be turned into child resources."""


class RequeueError(TiflowOperatorError):
    """
    Signals that the pass should be run again.

    This is not a failure: it is raised after an object has just been created
    or a force upgrade has just been triggered, so the caller re-enters the
    loop once the store has caught up.
    """


def is_requeue_error(exc: BaseException) -> bool:
    """Return True if the exception asks the caller to requeue."""
    return isinstance(exc, RequeueError)

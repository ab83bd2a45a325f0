"""Error taxonomy shared by the store, actions and the Kubernetes adapter."""

from kubernetes_asyncio.client.exceptions import ApiException


class OperatorError(Exception):
    """Base class for operator errors."""


class NotFoundError(OperatorError):
    """Target object vanished. Callers treat this as nothing to do."""


class ConflictError(OperatorError):
    """Optimistic concurrency version mismatch on write."""


class StoreError(OperatorError):
    """Status Store failure that is neither a conflict nor a missing key."""


def is_not_found(err: BaseException) -> bool:
    if isinstance(err, NotFoundError):
        return True
    return isinstance(err, ApiException) and err.status == 404


def is_conflict(err: BaseException) -> bool:
    if isinstance(err, ConflictError):
        return True
    return isinstance(err, ApiException) and err.status == 409

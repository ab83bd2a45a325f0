import copy
import logging
from typing import Any, Awaitable, Callable, Iterable

from kubarango.modules.storage.errors import is_conflict, is_not_found

from .inspector import PodInterface

logger = logging.getLogger("kubarango.k8s.finalizers")

MAX_REMOVE_FINALIZERS_ATTEMPTS = 50


async def remove_finalizers(
    finalizers: Iterable[str],
    get: Callable[[], Awaitable[Any]],
    update: Callable[[Any], Awaitable[Any]],
    ignore_not_found: bool,
) -> None:
    """
    Remove finalizers from an object.

    Gets the object, drops the given finalizers and writes it back, retrying
    on update conflicts. Objects are anything carrying a ``finalizers`` list.

    Args:
        finalizers: Finalizer names to remove
        get: Returns the current object
        update: Writes the object back
        ignore_not_found: Treat a vanished object as success
    """
    to_remove = set(finalizers)
    attempts = 0
    while True:
        attempts += 1
        try:
            obj = await get()
        except Exception as e:
            if is_not_found(e) and ignore_not_found:
                return
            logger.warning(f"Failed to get resource: {e}")
            raise

        original = list(obj.finalizers or [])
        if not original:
            return

        remaining = [f for f in original if f not in to_remove]
        if len(remaining) == len(original):
            logger.debug("No finalizers needed removal. Resource unchanged")
            return

        updated = copy.copy(obj)
        updated.finalizers = remaining
        try:
            await update(updated)
            return
        except Exception as e:
            if is_conflict(e):
                if attempts > MAX_REMOVE_FINALIZERS_ATTEMPTS:
                    logger.warning(
                        f"Failed to update resource with fewer finalizers after {attempts} attempts: {e}"
                    )
                    raise
                continue
            if is_not_found(e) and ignore_not_found:
                return
            logger.warning(f"Failed to update resource with fewer finalizers: {e}")
            raise


async def remove_pod_finalizers(
    pods: PodInterface, name: str, finalizers: Iterable[str], ignore_not_found: bool = True
) -> None:
    """Remove finalizers from the named pod."""

    async def get():
        return await pods.get(name)

    await remove_finalizers(finalizers, get, pods.update_finalizers, ignore_not_found)

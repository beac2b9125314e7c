import logging
from collections.abc import Iterator
from contextlib import contextmanager

from ..constants import BucketContext
from ..exceptions import ConflictingOperation
from ..utils.paths import is_prefix_of

logger = logging.getLogger(__name__)


def _overlaps(a: str, b: str) -> bool:
    return is_prefix_of(a, b) or is_prefix_of(b, a)


class PrefixLockManager:
    """In-process guard over key prefixes.

    Two prefixes in the same bucket conflict when they are equal or one is an
    ancestor of the other. The root prefix ``""`` conflicts with everything.
    Acquisition never waits: a conflict fails immediately.
    """

    def __init__(self) -> None:
        self._held: dict[BucketContext, list[str]] = {}

    def is_locked(self, bucket: BucketContext, prefix: str) -> bool:
        """Return True if any held prefix overlaps ``prefix``."""
        return any(_overlaps(held, prefix) for held in self._held.get(bucket, []))

    def acquire(self, bucket: BucketContext, *prefixes: str) -> None:
        """Acquire all prefixes at once or none of them."""
        held = self._held.setdefault(bucket, [])
        for prefix in prefixes:
            for other in held:
                if _overlaps(other, prefix):
                    logger.info(
                        f"Rejecting operation on {bucket.value}:{prefix!r}, "
                        f"{other!r} is in flight"
                    )
                    raise ConflictingOperation(
                        f"Another operation is in progress on '{other}'"
                    )
        held.extend(prefixes)

    def release(self, bucket: BucketContext, *prefixes: str) -> None:
        held = self._held.get(bucket, [])
        for prefix in prefixes:
            if prefix in held:
                held.remove(prefix)

    @contextmanager
    def hold(self, bucket: BucketContext, *prefixes: str) -> Iterator[None]:
        """Hold prefixes for the duration of the block."""
        self.acquire(bucket, *prefixes)
        try:
            yield
        finally:
            self.release(bucket, *prefixes)

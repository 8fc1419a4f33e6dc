"""Client-held cache buckets and their invalidation."""

import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


class CacheInvalidationError(Exception):
    """Raised when cache buckets cannot be enumerated or deleted."""

    pass


class CacheStorage:
    """Named cache buckets stored as subdirectories of one root directory.

    A missing root (or ``directory=None``) means the runtime has no cache
    storage, and every operation is a no-op.
    """

    def __init__(self, directory: str | None) -> None:
        self._root = Path(directory) if directory else None

    @property
    def available(self) -> bool:
        return self._root is not None and self._root.is_dir()

    def keys(self) -> list[str]:
        """List bucket names.

        Raises:
            CacheInvalidationError: If the root can't be listed.
        """
        if not self.available:
            return []
        try:
            return sorted(p.name for p in self._root.iterdir() if p.is_dir())
        except OSError as e:
            raise CacheInvalidationError(f"Failed to list caches in {self._root}: {e}")

    def delete(self, name: str) -> bool:
        """Delete one bucket. Returns False if it didn't exist.

        Raises:
            CacheInvalidationError: If the bucket exists but can't be removed.
        """
        if not self.available:
            return False
        bucket = self._root / name
        if not bucket.is_dir():
            return False
        try:
            shutil.rmtree(bucket)
        except OSError as e:
            raise CacheInvalidationError(f"Failed to delete cache '{name}': {e}")
        return True

    def clear_all(self) -> int:
        """Delete every bucket, attempting all of them before failing.

        Returns:
            Number of buckets deleted.

        Raises:
            CacheInvalidationError: If any bucket could not be deleted.
        """
        if not self.available:
            logger.debug("No cache storage available, skipping invalidation")
            return 0

        deleted = 0
        failures: list[str] = []
        for name in self.keys():
            try:
                if self.delete(name):
                    deleted += 1
            except CacheInvalidationError as e:
                failures.append(str(e))

        if failures:
            raise CacheInvalidationError("; ".join(failures))

        logger.info("Cleared %d cache bucket(s)", deleted)
        return deleted

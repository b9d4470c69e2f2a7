import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from playlistbot.domain.errors import GuardTimeout
from playlistbot.domain.ports import MusicCatalog


logger = logging.getLogger(__name__)


class AccessGuard:
    """Exclusive-access wrapper around the shared catalog session.

    The catalog client carries mutable token state, so every catalog call of a
    synchronization run happens inside one ``session()`` block and no two
    blocks overlap.
    """

    def __init__(self, catalog: MusicCatalog, timeout_sec: Optional[float] = None):
        self._catalog = catalog
        self._lock = threading.Lock()
        self._timeout_sec = timeout_sec

    @contextmanager
    def session(self) -> Iterator[MusicCatalog]:
        """Yield the catalog while holding exclusive access.

        Raises:
            GuardTimeout: if access was not obtained within the configured timeout
        """
        timeout = -1 if self._timeout_sec is None else self._timeout_sec
        if not self._lock.acquire(timeout=timeout):
            logger.warning(f"Timed out after {self._timeout_sec}s waiting for catalog session")
            raise GuardTimeout(f"catalog session busy for more than {self._timeout_sec}s")
        try:
            yield self._catalog
        finally:
            self._lock.release()

    @property
    def locked(self) -> bool:
        return self._lock.locked()

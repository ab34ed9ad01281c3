from __future__ import annotations

import threading

from chirpy.config import get_settings, reset_settings_cache
from chirpy.logging import get_logger
from chirpy.service.auth import AuthService
from chirpy.service.chirps import ChirpService
from chirpy.storage.document import DocumentStore

logger = get_logger(__name__)


class HitCounter:
    """Counts requests served under /app."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._hits = 0

    def increment(self) -> int:
        with self._lock:
            self._hits += 1
            return self._hits

    def reset(self) -> None:
        with self._lock:
            self._hits = 0

    @property
    def hits(self) -> int:
        with self._lock:
            return self._hits


class Runtime:
    """Holds singleton service instances for the FastAPI app."""

    def __init__(self):
        self.settings = get_settings()
        logger.info(
            "runtime_init_started",
            database_path=self.settings.database_path,
            test_mode=self.settings.test_mode,
        )
        try:
            self.store = DocumentStore(self.settings.database_path)
        except Exception as exc:
            logger.error(
                "runtime_store_init_failed",
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise
        self.auth = AuthService(self.store, self.settings.jwt_secret)
        self.chirps = ChirpService(self.store)
        self.metrics = HitCounter()


runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Get or create the Runtime singleton in a thread-safe manner.

    Uses double-checked locking:
    - First check without lock (fast path for existing runtime)
    - Second check with lock to prevent race condition during creation
    """
    global runtime
    if runtime is not None:
        return runtime
    with _runtime_lock:
        if runtime is None:
            runtime = Runtime()
        return runtime


def reset_runtime_for_tests() -> Runtime:
    """Reinitialize the runtime singleton for isolated test runs."""
    global runtime

    with _runtime_lock:
        reset_settings_cache()
        settings = get_settings()
        if not settings.test_mode:
            raise RuntimeError("runtime reset is only allowed in TEST_MODE")
        runtime = Runtime()
        return runtime

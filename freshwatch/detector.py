"""Update detection loop and the notify/confirm/refresh state machine."""

import logging
import threading
import traceback
from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum
from threading import Event, Thread

from .audit_log import AuditLog
from .cache import CacheInvalidationError, CacheStorage
from .config import DetectorConfig, RefreshConfig
from .fetcher import NetworkError, VersionFetcher
from .models import (
    CheckOutcome,
    Confirmation,
    DetectorState,
    ErrorEntry,
    RefreshChoice,
    UpdateEntry,
    UpdatePreference,
    VersionRecord,
)
from .reloader import Reloader
from .ui import AskUser, Notifier
from .version_store import VersionStore

logger = logging.getLogger(__name__)

# Operation names recorded as ErrorEntry.context.
CONTEXT_INITIALIZE = "initialize"
CONTEXT_CHECK = "check for updates"
CONTEXT_HANDLE = "handle new content"
CONTEXT_CLEAR_CACHE = "clear cache"
CONTEXT_REFRESH = "refresh content"

# UpdateEntry.action values.
ACTION_REFRESHED = "refreshed"
ACTION_DEFERRED = "detected, not refreshed"

# Preference persisted when the user ticks "remember" for each choice.
_REMEMBERED_PREFERENCE = {
    RefreshChoice.REFRESH_NOW: UpdatePreference.ALWAYS_MANUAL,
    RefreshChoice.ALWAYS_AUTO_REFRESH: UpdatePreference.ALWAYS_AUTO_REFRESH,
    RefreshChoice.DEFER: UpdatePreference.ALWAYS_MANUAL,
}


class ErrorCategory(Enum):
    """Coarse error classes used for user-facing messages."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    NOT_FOUND = "not-found"
    SERVER_ERROR = "server-error"
    UNKNOWN = "unknown"


_ERROR_MESSAGES = {
    ErrorCategory.NETWORK: "Network connection failed, please check your connection",
    ErrorCategory.TIMEOUT: "Request timed out, please try again later",
    ErrorCategory.NOT_FOUND: "Content not found, please check the site address",
    ErrorCategory.SERVER_ERROR: "Server error, please try again later",
    ErrorCategory.UNKNOWN: "Refresh failed, please reload manually",
}


def categorize_error(error: BaseException) -> ErrorCategory:
    """Classify an error for display."""
    if isinstance(error, NetworkError):
        if error.timed_out:
            return ErrorCategory.TIMEOUT
        if error.status_code is None:
            return ErrorCategory.NETWORK
        if error.status_code == 404:
            return ErrorCategory.NOT_FOUND
        if error.status_code >= 500:
            return ErrorCategory.SERVER_ERROR
    return ErrorCategory.UNKNOWN


def describe_error(error: BaseException) -> str:
    """Human-readable message for an error, by category."""
    return _ERROR_MESSAGES[categorize_error(error)]


def _format_stack(error: BaseException) -> str | None:
    if error.__traceback__ is None:
        return None
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


def _now() -> str:
    return datetime.now(UTC).isoformat()


class UpdateDetector:
    """Polls the version document and drives the refresh flow.

    States: IDLE -> CHECKING -> (IDLE | AWAITING_CONFIRMATION) ->
    (IDLE | REFRESHING) -> IDLE, with FAILED entered on any error and
    left immediately for IDLE. At most one check or refresh runs at a
    time; overlapping triggers are dropped, not queued.

    Example:
        detector = UpdateDetector(config.detector, versions, audit, ask_user=ConsolePrompt())
        detector.start()
        # ... later ...
        detector.stop()
    """

    def __init__(
        self,
        config: DetectorConfig,
        version_store: VersionStore,
        audit_log: AuditLog,
        ask_user: AskUser,
        notifier: Notifier | None = None,
        cache: CacheStorage | None = None,
        reloader: Callable[[], None] | None = None,
        fetcher: Callable[[], VersionRecord] | None = None,
        on_state_change: Callable[[DetectorState], None] | None = None,
    ) -> None:
        """Initialize the detector.

        Args:
            config: Detector configuration (site URL, interval, user agent).
            version_store: Persistence for the acknowledged version and preference.
            audit_log: Destination for update and error entries.
            ask_user: Confirm dialog; returns the user's choice for a new version.
            notifier: Notification surfaces (defaults to log-only).
            cache: Cache buckets cleared on refresh (defaults to none).
            reloader: Issues the reload (defaults to a log-only Reloader).
            fetcher: Returns the remote VersionRecord (defaults to HTTP fetch).
            on_state_change: Optional callback invoked on every state transition.
        """
        self._config = config
        self._version_store = version_store
        self._audit_log = audit_log
        self._ask_user = ask_user
        self._notifier = notifier or Notifier()
        self._cache = cache or CacheStorage(None)
        self._reload = reloader or Reloader(RefreshConfig())
        self._fetch = fetcher or VersionFetcher(config)
        self._on_state_change = on_state_change

        self._state = DetectorState.IDLE
        self._state_lock = threading.Lock()
        # Re-entrancy guard: held for the whole duration of a check or refresh.
        self._check_lock = threading.Lock()
        self._current_version: str | None = None

        self._stop_event = Event()
        self._thread: Thread | None = None

    # -- Properties -----------------------------------------------------------

    @property
    def state(self) -> DetectorState:
        with self._state_lock:
            return self._state

    @property
    def is_checking(self) -> bool:
        return self._check_lock.locked()

    @staticmethod
    def has_new_content(remote_version: str, stored_version: str | None) -> bool:
        """No baseline, or any textual difference (including downgrades), is new."""
        if not stored_version:
            return True
        return remote_version != stored_version

    # -- Loop control ---------------------------------------------------------

    def start(self) -> None:
        """Start the polling loop in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Update detector already running")
            return

        self._stop_event.clear()
        self._thread = Thread(target=self._run_loop, daemon=True, name="update-detector")
        self._thread.start()
        logger.info(
            "Update detector started for %s (interval: %ds)",
            self._config.version_url,
            self._config.interval,
        )

    def stop(self, timeout: float = 10.0) -> None:
        """Stop the polling loop.

        An in-flight check is not cancelled; the thread is joined for at
        most ``timeout`` seconds.
        """
        if self._thread is None or not self._thread.is_alive():
            return

        logger.info("Stopping update detector...")
        self._stop_event.set()
        self._thread.join(timeout=timeout)

        if self._thread.is_alive():
            logger.warning("Update detector thread did not stop within timeout")
        else:
            logger.info("Update detector stopped")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_loop(self) -> None:
        logger.debug("Detector loop started")

        if self._config.check_on_startup:
            self._tick(self.initialize)

        # wait() returns True once stop() is called
        while not self._stop_event.wait(timeout=self._config.interval):
            self._tick(self.check_for_updates)

        logger.debug("Detector loop exited")

    def _tick(self, check: Callable[[], CheckOutcome]) -> None:
        # The timer keeps running whatever happens in a single cycle.
        try:
            check()
        except Exception as e:
            logger.error("Unexpected error in check cycle: %s", e)

    # -- Operations -----------------------------------------------------------

    def initialize(self) -> CheckOutcome:
        """Load persisted state and run the startup check."""
        try:
            stored = self._version_store.get_version()
        except Exception as e:
            self._record_error(e, CONTEXT_INITIALIZE)
            return CheckOutcome.FAILED

        logger.info(
            "Stored version: %s, %d update entries, %d error entries",
            stored or "(none)",
            len(self._audit_log.list_updates()),
            len(self._audit_log.list_errors()),
        )
        return self.check_for_updates()

    def force_check(self) -> CheckOutcome:
        """Check now, bypassing the interval but not the re-entrancy guard."""
        logger.info("Forcing update check")
        return self.check_for_updates()

    def check_for_updates(self) -> CheckOutcome:
        """Run one full check cycle.

        Returns:
            SKIPPED if another check is in flight, otherwise the outcome
            of this cycle. Never raises.
        """
        if not self._check_lock.acquire(blocking=False):
            logger.debug("Check already in progress, skipping")
            return CheckOutcome.SKIPPED
        try:
            return self._check()
        finally:
            self._check_lock.release()

    def refresh_content(self, version: str | None = None) -> CheckOutcome:
        """Retry the refresh sequence, e.g. from the refresh-error panel.

        Args:
            version: Version to acknowledge; defaults to the last fetched one.
        """
        version = version or self._current_version
        if version is None:
            logger.warning("No known remote version to refresh to, run a check first")
            return CheckOutcome.SKIPPED

        if not self._check_lock.acquire(blocking=False):
            logger.debug("Check already in progress, skipping refresh")
            return CheckOutcome.SKIPPED
        try:
            return self._refresh(version)
        finally:
            self._check_lock.release()

    def version_info(self) -> dict[str, str | None]:
        """Last fetched remote version, stored version and last check time.

        Raises:
            StorageError: If the persistent store can't be read.
        """
        return {
            "current": self._current_version,
            "stored": self._version_store.get_version(),
            "last_checked": self._version_store.get_last_check(),
        }

    def reset(self) -> None:
        """Forget the baseline, the preference and both logs; clear caches.

        Raises:
            StorageError: If the persistent store can't be updated.
        """
        logger.info("Resetting detector state")
        self._version_store.clear_version()
        self._version_store.clear_last_check()
        self._version_store.set_preference(UpdatePreference.UNSET)
        self._audit_log.clear_all()
        self._current_version = None

        try:
            self._cache.clear_all()
        except CacheInvalidationError as e:
            self._record_error(e, CONTEXT_CLEAR_CACHE)

    # -- State machine --------------------------------------------------------

    def _check(self) -> CheckOutcome:
        self._set_state(DetectorState.CHECKING)
        try:
            record = self._fetch()
            self._current_version = record.version
            self._version_store.touch_last_check()
            stored = self._version_store.get_version()
        except Exception as e:
            return self._fail(e, CONTEXT_CHECK)

        if not self.has_new_content(record.version, stored):
            logger.debug("No new content (version %s)", record.version)
            self._set_state(DetectorState.IDLE)
            return CheckOutcome.UNCHANGED

        logger.info("New content detected: remote %s, stored %s", record.version, stored or "(none)")
        return self._handle_new_content(record)

    def _handle_new_content(self, record: VersionRecord) -> CheckOutcome:
        self._set_state(DetectorState.AWAITING_CONFIRMATION)
        try:
            self._notify(self._notifier.show_update_available, record)

            if self._version_store.get_preference() is UpdatePreference.ALWAYS_AUTO_REFRESH:
                logger.info("Auto-refresh enabled, skipping confirmation")
                choice = RefreshChoice.ALWAYS_AUTO_REFRESH
            else:
                confirmation = self._ask_user(record)
                self._remember(confirmation)
                choice = confirmation.choice

            if choice is RefreshChoice.DEFER:
                # Persisted eagerly so the same version isn't prompted again.
                self._version_store.set_version(record.version)
                self._record_update(record.version, ACTION_DEFERRED)
                self._set_state(DetectorState.IDLE)
                logger.info("Refresh to version %s deferred", record.version)
                return CheckOutcome.DEFERRED
        except Exception as e:
            return self._fail(e, CONTEXT_HANDLE)

        return self._refresh(record.version)

    def _refresh(self, version: str) -> CheckOutcome:
        self._set_state(DetectorState.REFRESHING)
        logger.info("Refreshing content to version %s", version)
        try:
            self._notify(self._notifier.show_refresh_indicator)
            try:
                self._cache.clear_all()
            except CacheInvalidationError as e:
                # Best effort: the reload re-fetches content regardless.
                self._record_error(e, CONTEXT_CLEAR_CACHE)
            self._reload()
            self._version_store.set_version(version)
        except Exception as e:
            self._notify(self._notifier.hide_refresh_indicator)
            outcome = self._fail(e, CONTEXT_REFRESH)
            self._notify(self._notifier.show_refresh_error, describe_error(e))
            return outcome

        self._record_update(version, ACTION_REFRESHED)
        self._notify(self._notifier.hide_refresh_indicator)
        self._set_state(DetectorState.IDLE)
        logger.info("Content refreshed to version %s", version)
        return CheckOutcome.REFRESHED

    def _remember(self, confirmation: Confirmation) -> None:
        if confirmation.remember:
            self._version_store.set_preference(_REMEMBERED_PREFERENCE[confirmation.choice])

    def _fail(self, error: BaseException, context: str) -> CheckOutcome:
        self._set_state(DetectorState.FAILED)
        self._record_error(error, context)
        self._set_state(DetectorState.IDLE)
        return CheckOutcome.FAILED

    def _set_state(self, state: DetectorState) -> None:
        with self._state_lock:
            previous = self._state
            self._state = state
        logger.debug("Detector state: %s -> %s", previous.value, state.value)

        if self._on_state_change is not None:
            try:
                self._on_state_change(state)
            except Exception as e:
                logger.error("State change callback failed: %s", e)

    def _notify(self, method: Callable[..., None], *args: object) -> None:
        try:
            method(*args)
        except Exception as e:
            logger.error("Notifier call failed: %s", e)

    # -- Audit ----------------------------------------------------------------

    def _record_update(self, version: str, action: str) -> None:
        self._audit_log.append_update(
            UpdateEntry(
                timestamp=_now(),
                version=version,
                action=action,
                user_agent=self._config.user_agent,
                url=self._config.site_url,
            )
        )

    def _record_error(self, error: BaseException, context: str) -> None:
        logger.warning("Failed to %s: %s (%s)", context, error, describe_error(error))
        self._audit_log.append_error(
            ErrorEntry(
                timestamp=_now(),
                context=context,
                error_message=str(error) or type(error).__name__,
                stack_trace=_format_stack(error),
                user_agent=self._config.user_agent,
                url=self._config.site_url,
            )
        )

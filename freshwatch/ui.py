"""User-facing surfaces: update notice, confirm prompt, refresh progress."""

import logging
import sys
from collections.abc import Callable
from typing import TextIO

from .models import Confirmation, RefreshChoice, VersionRecord

logger = logging.getLogger(__name__)

# Signature of the "ask user" capability used by the detector.
AskUser = Callable[[VersionRecord], Confirmation]


class Notifier:
    """Notification surfaces the detector drives.

    The base class only logs; subclasses render somewhere visible.
    """

    def show_update_available(self, record: VersionRecord) -> None:
        logger.info("New content available: version %s", record.version)

    def show_refresh_indicator(self) -> None:
        logger.info("Refreshing content...")

    def hide_refresh_indicator(self) -> None:
        logger.debug("Refresh indicator hidden")

    def show_refresh_error(self, message: str) -> None:
        logger.warning("Refresh failed: %s", message)


class ConsoleNotifier(Notifier):
    """Notifier that writes to a text stream (stdout by default)."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout

    def _write(self, text: str) -> None:
        print(text, file=self._stream, flush=True)

    def show_update_available(self, record: VersionRecord) -> None:
        suffix = f" (updated {record.last_updated})" if record.last_updated else ""
        self._write(f"New content available: version {record.version}{suffix}")

    def show_refresh_indicator(self) -> None:
        self._write("Refreshing content...")

    def hide_refresh_indicator(self) -> None:
        self._write("Refresh complete.")

    def show_refresh_error(self, message: str) -> None:
        self._write(f"Refresh failed: {message}")
        self._write("Run 'freshwatch check' to retry, or reload the content manually.")


_ANSWERS = {
    "r": RefreshChoice.REFRESH_NOW,
    "a": RefreshChoice.ALWAYS_AUTO_REFRESH,
    "l": RefreshChoice.DEFER,
}


class ConsolePrompt:
    """Confirm dialog on a terminal.

    Answers are r (refresh now), a (always auto-refresh) or l (later);
    a trailing "!" remembers the choice. When input is not interactive
    the update is deferred without remembering anything.
    """

    def __init__(
        self,
        input_func: Callable[[str], str] = input,
        interactive: bool | None = None,
    ) -> None:
        self._input = input_func
        self._interactive = sys.stdin.isatty() if interactive is None else interactive

    def __call__(self, record: VersionRecord) -> Confirmation:
        if not self._interactive:
            logger.info("Non-interactive session, deferring version %s", record.version)
            return Confirmation(RefreshChoice.DEFER)

        prompt = (
            f"New content (version {record.version}). "
            "Refresh now [r], always auto-refresh [a], later [l]? Append '!' to remember: "
        )
        while True:
            try:
                answer = self._input(prompt).strip().lower()
            except EOFError:
                return Confirmation(RefreshChoice.DEFER)

            remember = answer.endswith("!")
            choice = _ANSWERS.get(answer.rstrip("!"))
            if choice is not None:
                return Confirmation(choice, remember=remember)


def confirm(question: str, input_func: Callable[[str], str] = input) -> bool:
    """Ask a yes/no question; anything but y/yes is "no"."""
    try:
        answer = input_func(f"{question} [y/N]: ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")

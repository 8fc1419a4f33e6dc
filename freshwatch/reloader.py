"""Issuing the reload that makes the host pick up fresh content."""

import logging
import shlex
import subprocess
import time

from .config import RefreshConfig

logger = logging.getLogger(__name__)


class ReloadError(Exception):
    """Raised when the reload could not be issued."""

    pass


class Reloader:
    """Runs the configured reload command after a short delay.

    Without a command the reload is only logged, which suits hosts that
    re-read content on their own once caches are gone.
    """

    def __init__(self, config: RefreshConfig) -> None:
        self._config = config

    def __call__(self) -> None:
        self.reload()

    def reload(self) -> None:
        """Issue the reload.

        Raises:
            ReloadError: If the command is missing, fails, or times out.
        """
        if self._config.reload_delay > 0:
            time.sleep(self._config.reload_delay)

        if self._config.reload_command is None:
            logger.info("Reload issued (no reload command configured)")
            return

        args = shlex.split(self._config.reload_command)
        logger.info("Running reload command: %s", args[0])
        try:
            subprocess.run(
                args,
                check=True,
                capture_output=True,
                text=True,
                timeout=self._config.reload_timeout,
            )
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or "").strip()
            raise ReloadError(
                f"Reload command exited with status {e.returncode}" + (f": {detail}" if detail else "")
            ) from e
        except subprocess.TimeoutExpired as e:
            raise ReloadError(f"Reload command timeout after {self._config.reload_timeout}s") from e
        except OSError as e:
            raise ReloadError(f"Failed to run reload command: {e}") from e

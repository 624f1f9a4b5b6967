"""Browser launchers used to open the authorization URL.

The flow only depends on the :class:`BrowserLauncher` protocol -- "open this
URL or raise :class:`~loopauth.exceptions.BrowserLaunchError`" -- so tests
and embedding applications can substitute their own.

Two implementations ship with loopauth:

* :class:`SystemBrowserLauncher` -- the user's default browser via the
  standard :mod:`webbrowser` module.
* :class:`ManualLauncher` -- prints the URL for the user to open themselves
  (``loopauth login --no-browser``, SSH sessions, containers).
"""

from __future__ import annotations

import logging
import webbrowser
from typing import Callable, Protocol, runtime_checkable

from loopauth.exceptions import BrowserLaunchError

logger = logging.getLogger(__name__)


@runtime_checkable
class BrowserLauncher(Protocol):
    """Anything that can show the authorization page to the user."""

    def launch(self, url: str) -> None:
        """Open *url*, raising :class:`BrowserLaunchError` on failure."""
        ...


class SystemBrowserLauncher:
    """Open URLs in the user's default browser.

    Args:
        new: Passed to :func:`webbrowser.open` (``0`` same window, ``1`` new
            window, ``2`` new tab).
    """

    def __init__(self, new: int = 2) -> None:
        self._new = new

    def launch(self, url: str) -> None:
        try:
            opened = webbrowser.open(url, new=self._new)
        except webbrowser.Error as exc:
            raise BrowserLaunchError(f"Could not open a browser: {exc}") from exc
        if not opened:
            raise BrowserLaunchError(
                "No usable browser was found. Re-run with --no-browser and "
                "open the URL manually."
            )
        logger.debug("Opened authorization URL in the system browser")


class ManualLauncher:
    """Hand the URL to the user instead of opening a browser.

    Args:
        emit: Called with a ready-to-print message containing the URL.
            Defaults to :func:`loopauth.output.notice`.
    """

    def __init__(self, emit: Callable[[str], None] | None = None) -> None:
        if emit is None:
            from loopauth.output import notice

            emit = notice
        self._emit = emit

    def launch(self, url: str) -> None:
        self._emit(f"Open this URL in a browser to continue:\n\n  {url}\n")

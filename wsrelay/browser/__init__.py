"""Browser identity presented to the backend."""

from wsrelay.browser.headers import BrowserHeaders

__all__ = ["BrowserHeaders"]

from __future__ import annotations

import webbrowser
from abc import ABC, abstractmethod


class Navigator(ABC):
    """Moves the user agent to another URL and reports where it currently is."""

    @abstractmethod
    def redirect(self, url: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def current_url(self) -> str:
        raise NotImplementedError


class BrowserNavigator(Navigator):
    """Opens the system browser; the callback URL is supplied by whoever receives it."""

    def __init__(self, open_url=webbrowser.open) -> None:
        self._open_url = open_url
        self._current_url = ""

    def redirect(self, url: str) -> None:
        self._open_url(url)

    def current_url(self) -> str:
        return self._current_url

    def set_current_url(self, url: str) -> None:
        self._current_url = url


class RequestNavigator(Navigator):
    """Navigator bound to one incoming HTTP request.

    ``redirect`` only records the target; the web layer turns it into a
    redirect response.
    """

    def __init__(self, current_url: str = "") -> None:
        self._current_url = current_url
        self.redirect_url: str | None = None

    def bind(self, current_url: str) -> None:
        self._current_url = current_url
        self.redirect_url = None

    def redirect(self, url: str) -> None:
        self.redirect_url = url

    def current_url(self) -> str:
        return self._current_url

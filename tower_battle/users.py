from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol


class UserDirectory(Protocol):
    """Platform user lookup. Implemented by the chat integration."""

    def display_name(self, user_id: str) -> str | None: ...


class StaticUserDirectory:
    """In-memory directory; the default when no chat integration is wired in."""

    def __init__(self, names: Mapping[str, str] | None = None):
        self._names = dict(names or {})

    def display_name(self, user_id: str) -> str | None:
        return self._names.get(user_id)

"""Session identity and the persisted display theme."""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Callable, Optional, Tuple

from . import config
from .models import Theme, User

logger = logging.getLogger(__name__)

ANONYMOUS_SELLER = ("anonymous", "Student")
DEFAULT_USER_NAME = "Student User"


class Session:
    """Holds at most one mock-authenticated user."""

    def __init__(self) -> None:
        self.user: Optional[User] = None

    def mock_login(self, email: str, name: str = "") -> User:
        """Log in without any credential check; every pair succeeds."""

        self.user = User(
            user_id=uuid.uuid4().hex,
            email=email,
            name=name.strip() or DEFAULT_USER_NAME,
        )
        logger.info("Angemeldet als %s <%s>", self.user.name, self.user.email)
        return self.user

    def logout(self) -> None:
        self.user = None

    def seller_identity(self) -> Tuple[str, str]:
        if self.user is None:
            return ANONYMOUS_SELLER
        return self.user.user_id, self.user.name


class ThemeStore:
    """Small key-value file standing in for the browser's local storage."""

    def __init__(self, path: str | Path = config.THEME_FILE, key: str = config.THEME_KEY) -> None:
        self.path = Path(path)
        self.key = key

    def _read_all(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Theme-Datei %s nicht lesbar, verwende Standard: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def read(self) -> Optional[Theme]:
        value = self._read_all().get(self.key)
        if value is None:
            return None
        try:
            return Theme(value)
        except ValueError:
            logger.warning("Ungültiger Theme-Wert %r in %s ignoriert.", value, self.path)
            return None

    def write(self, theme: Theme) -> None:
        data = self._read_all()
        data[self.key] = theme.value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding="utf-8")


class ThemeState:
    """Current theme; every change is persisted and re-applied."""

    def __init__(
        self,
        store: ThemeStore,
        theme: Theme = Theme.LIGHT,
        apply: Optional[Callable[[Theme], None]] = None,
    ) -> None:
        self._store = store
        self.theme = theme
        self._apply = apply

    @classmethod
    def load(cls, store: ThemeStore, apply: Optional[Callable[[Theme], None]] = None) -> "ThemeState":
        """Read the persisted theme and apply it before anything is rendered."""

        state = cls(store, store.read() or Theme.LIGHT, apply)
        if apply is not None:
            apply(state.theme)
        return state

    def toggle(self) -> Theme:
        self.theme = self.theme.toggled()
        self._store.write(self.theme)
        if self._apply is not None:
            self._apply(self.theme)
        logger.info("Theme gewechselt: %s", self.theme.value)
        return self.theme

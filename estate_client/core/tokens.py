"""
Token stores - the durable copy of the session's bearer token.

The session store is the only writer. Everything else reads through
``get()``.
"""

import logging
import os
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_FILE = Path("~/.config/estate/token")


class TokenStore(Protocol):
    """Read/write/clear access to the persisted token."""

    def get(self) -> str | None: ...

    def set(self, token: str) -> None: ...

    def clear(self) -> None: ...


class MemoryTokenStore:
    """Token store that lives only as long as the process."""

    def __init__(self, token: str | None = None):
        self._token = token or None

    def get(self) -> str | None:
        return self._token

    def set(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None


class FileTokenStore:
    """Token store backed by a single file readable only by its owner."""

    def __init__(self, path: str | Path | None = None):
        raw_path = path or os.environ.get("ESTATE_TOKEN_FILE") or DEFAULT_TOKEN_FILE
        self.path = Path(raw_path).expanduser()

    def get(self) -> str | None:
        try:
            token = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        return token or None

    def set(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(token)
        logger.debug("Token persisted to %s", self.path)

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return
        logger.debug("Token removed from %s", self.path)

"""
VaultAuth Trust Store

Persistent storage for small named values such as the device trust
identifier. Values survive between logins; the negotiation only reads and
writes them.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

import attrs
import structlog

logger = structlog.get_logger()

HOME_ENV_VAR = "VAULTAUTH_HOME"


class TrustStore(ABC):
    """Named value storage that outlives a single login."""

    @abstractmethod
    def read(self, name: str) -> Optional[str]:
        """Return the stored value, or None if nothing is stored."""
        ...

    @abstractmethod
    def write(self, name: str, value: str) -> None:
        """Store ``value`` under ``name``, replacing any previous value."""
        ...


@attrs.define
class MemoryTrustStore(TrustStore):
    """In-process store; nothing is persisted."""

    values: Dict[str, str] = attrs.Factory(dict)

    def read(self, name: str) -> Optional[str]:
        return self.values.get(name)

    def write(self, name: str, value: str) -> None:
        self.values[name] = value


def default_store_directory() -> Path:
    """``$VAULTAUTH_HOME`` if set, else ``~/.vaultauth``."""
    home = os.environ.get(HOME_ENV_VAR)
    if home:
        return Path(home)
    return Path.home() / ".vaultauth"


@attrs.define
class FileTrustStore(TrustStore):
    """
    One file per name inside a private directory.

    Files are created with mode 0600 and the directory with 0700.
    """

    directory: Path = attrs.field(factory=default_store_directory, converter=Path)

    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def _path(self, name: str) -> Path:
        if not name or "/" in name or name in (".", ".."):
            raise ValueError(f"Invalid store entry name: {name!r}")
        return self.directory / name

    def read(self, name: str) -> Optional[str]:
        path = self._path(name)
        try:
            value = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        return value.rstrip("\n") or None

    def write(self, name: str, value: str) -> None:
        path = self._path(name)
        self.directory.mkdir(mode=0o700, parents=True, exist_ok=True)

        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(value)

        self._logger.debug("trust_store_write", name=name, directory=str(self.directory))

import json
import os
import tempfile
from dataclasses import dataclass
from typing import Dict, Optional

from .logging import get_logger

logger = get_logger(__name__)

ACCESS_SLOT = "access_token"
RENEWAL_SLOT = "refresh_token"


@dataclass(frozen=True)
class CredentialPair:
    """Access + renewal token pair; both opaque, both required."""

    access: str
    renewal: str

    def __post_init__(self):
        if not self.access or not self.renewal:
            raise ValueError("A credential pair needs both an access and a renewal token.")


class MemoryCredentialStorage:
    """Two named slots kept in a dict (tests, ephemeral sessions)."""

    def __init__(self, slots: Optional[Dict[str, str]] = None):
        self.slots: Dict[str, str] = dict(slots or {})

    def read(self) -> Dict[str, str]:
        return dict(self.slots)

    def write(self, slots: Dict[str, str]) -> None:
        self.slots = dict(slots)

    def erase(self) -> None:
        self.slots = {}


class FileCredentialStorage:
    """Two named slots persisted as one JSON document.

    Writes go to a temp file in the same directory followed by os.replace, so
    readers see either the old pair or the new one, never half of each.
    """

    def __init__(self, path: str):
        self.path = path

    def read(self) -> Dict[str, str]:
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("credentials_corrupt", path=self.path, error=str(exc))
            return {}
        return data if isinstance(data, dict) else {}

    def write(self, slots: Dict[str, str]) -> None:
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".credentials-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(slots, fh)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def erase(self) -> None:
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass


class CredentialStore:
    """Single source of truth for the current credential pair.

    Only the renewal coordinator, the auth manager and the lifecycle
    controller write here; everything else goes through the dispatcher.
    """

    def __init__(self, storage=None):
        self.storage = storage if storage is not None else MemoryCredentialStorage()
        self._pair: Optional[CredentialPair] = None
        self.generation = 0

    def load(self) -> Optional[CredentialPair]:
        """Restore the persisted pair; missing or partial slots mean no session."""
        slots = self.storage.read()
        access = slots.get(ACCESS_SLOT)
        renewal = slots.get(RENEWAL_SLOT)
        if not (isinstance(access, str) and access and isinstance(renewal, str) and renewal):
            if slots:
                logger.warning("credentials_incomplete", slots=sorted(slots))
            self._pair = None
            return None
        self._pair = CredentialPair(access=access, renewal=renewal)
        self.generation += 1
        logger.info("credentials_loaded")
        return self._pair

    def set(self, pair: CredentialPair) -> None:
        self.storage.write({ACCESS_SLOT: pair.access, RENEWAL_SLOT: pair.renewal})
        self._pair = pair
        self.generation += 1

    def clear(self) -> None:
        """Forget the pair in memory first, so a failing erase still ends the session."""
        self._pair = None
        self.storage.erase()

    def current(self) -> Optional[str]:
        return self._pair.access if self._pair else None

    def renewal(self) -> Optional[str]:
        return self._pair.renewal if self._pair else None

    @property
    def is_authenticated(self) -> bool:
        return self._pair is not None

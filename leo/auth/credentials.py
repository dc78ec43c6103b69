"""OAuth2 credential record and its on-disk store.

Credentials live in ``<config_dir>/credentials.json`` readable by the
owner only.  A missing file means "not logged in" and is not an error.
"""

from __future__ import annotations

import logging
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

from pydantic import BaseModel, ValidationError

from leo.config import config_dir
from leo.errors import AuthError

logger = logging.getLogger(__name__)

EXPIRY_BUFFER = timedelta(minutes=5)


class Credentials(BaseModel):
    access_token: str
    refresh_token: str | None = None
    token_type: str = "Bearer"
    expires_at: datetime | None = None
    scope: str | None = None

    @classmethod
    def new(
        cls,
        access_token: str,
        refresh_token: str | None = None,
        expires_in: int | None = None,
        *,
        token_type: str | None = None,
        scope: str | None = None,
    ) -> Credentials:
        """Build from a token endpoint response; ``expires_in`` is in seconds."""
        expires_at = None
        if expires_in is not None:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            token_type=token_type or "Bearer",
            expires_at=expires_at,
            scope=scope,
        )

    def is_expired(self) -> bool:
        """True when the token expires within the next five minutes.

        A token with no known expiry never expires.
        """
        if self.expires_at is None:
            return False
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at - EXPIRY_BUFFER < datetime.now(timezone.utc)

    def can_refresh(self) -> bool:
        return bool(self.refresh_token)


def credentials_path() -> Path:
    return config_dir() / "credentials.json"


def load_credentials(path: Path | None = None) -> Credentials | None:
    """Read stored credentials; None when absent or unreadable."""
    path = path or credentials_path()
    if not path.exists():
        return None
    try:
        return Credentials.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as e:
        logger.warning("Ignoring unreadable credentials at %s: %s", path, e)
        return None


def save_credentials(credentials: Credentials, path: Path | None = None) -> Path:
    """Write credentials atomically with mode 0600.

    The temp file is created in the target directory so ``os.replace`` is a
    rename on the same filesystem.
    """
    path = path or credentials_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".credentials-", dir=path.parent)
        try:
            os.chmod(tmp_name, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(credentials.model_dump_json(indent=2))
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as e:
        raise AuthError(f"Could not save credentials to {path}: {e}") from e
    logger.debug("Saved credentials to %s", path)
    return path


def delete_credentials(path: Path | None = None) -> bool:
    """Remove stored credentials. Returns True when a file was deleted."""
    path = path or credentials_path()
    if not path.exists():
        return False
    path.unlink()
    return True

from __future__ import annotations

import logging
import time
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.orm import Session

from ..timestamps import utcnow
from .config import DEFAULT_SERVER_CONFIG, ServerConfig
from .user_store import get_user

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif"}
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif"}
AVATAR_URL_PREFIX = "/uploads/avatars/"


class InvalidAvatar(ValueError):
    pass


def _file_for(url: str | None, config: ServerConfig) -> Path | None:
    if not url or not url.startswith(AVATAR_URL_PREFIX):
        return None
    return config.avatars_dir / url[len(AVATAR_URL_PREFIX):]


def _remove_file(path: Path | None) -> None:
    if path is None:
        return
    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.warning("Could not remove avatar file %s", path, exc_info=True)


def _on_outcome(session: Session, committed: Path | None, rolled_back: Path | None) -> None:
    """Files follow the transaction: one goes on commit, the other on rollback."""
    event.listen(session, "after_commit", lambda _: _remove_file(committed), once=True)
    event.listen(session, "after_rollback", lambda _: _remove_file(rolled_back), once=True)


def save_avatar(
    session: Session,
    user_id: str,
    filename: str,
    content_type: str | None,
    data: bytes,
    config: ServerConfig = DEFAULT_SERVER_CONFIG,
) -> str:
    """Store an uploaded image for ``user_id`` and return its public URL.

    Raises ``UserNotFound`` for an unknown user and ``InvalidAvatar`` for a
    non-image or oversized upload.
    """
    ext = Path(filename or "").suffix.lower()
    if ext not in ALLOWED_EXTENSIONS or (content_type or "").lower() not in ALLOWED_CONTENT_TYPES:
        raise InvalidAvatar("Only image files are allowed")
    if not data:
        raise InvalidAvatar("No file uploaded")
    if len(data) > config.max_avatar_bytes:
        raise InvalidAvatar("File too large")

    user = get_user(session, user_id)
    old_file = _file_for(user.avatar_url, config)

    config.avatars_dir.mkdir(parents=True, exist_ok=True)
    # Timestamped name so clients never show a cached old image
    stored_name = f"{user_id}-{int(time.time() * 1000)}{ext}"
    new_file = config.avatars_dir / stored_name

    user.avatar_url = AVATAR_URL_PREFIX + stored_name
    user.updated_at = utcnow()
    session.flush()
    _on_outcome(session, committed=old_file, rolled_back=new_file)
    new_file.write_bytes(data)
    logger.info("Stored avatar for user %s", user_id)
    return user.avatar_url


def delete_avatar(
    session: Session,
    user_id: str,
    config: ServerConfig = DEFAULT_SERVER_CONFIG,
) -> None:
    user = get_user(session, user_id)
    old_file = _file_for(user.avatar_url, config)
    user.avatar_url = None
    user.updated_at = utcnow()
    session.flush()
    _on_outcome(session, committed=old_file, rolled_back=None)

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


class ConflictPolicy(str, Enum):
    # Incoming bulk rows older than the stored row are skipped
    timestamp = "timestamp"
    # Last bulk call wins regardless of timestamps
    overwrite = "overwrite"


@dataclass(frozen=True)
class ServerConfig:
    database_url: str = os.getenv("REVIEWSYNC_DATABASE_URL", "sqlite:///./reviewsync.db")
    uploads_dir: Path = Path(os.getenv("REVIEWSYNC_UPLOADS_DIR", "uploads"))
    conflict_policy: ConflictPolicy = ConflictPolicy(
        os.getenv("REVIEWSYNC_CONFLICT_POLICY", ConflictPolicy.timestamp.value)
    )
    cors_origin: str = os.getenv("REVIEWSYNC_CORS_ORIGIN", "*")
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "3000"))
    max_avatar_bytes: int = 5 * 1024 * 1024

    @property
    def avatars_dir(self) -> Path:
        return self.uploads_dir / "avatars"


DEFAULT_SERVER_CONFIG = ServerConfig()

from __future__ import annotations

import os
import tempfile

# Must be set before reviewsync.server.config is imported anywhere
os.environ["REVIEWSYNC_DATABASE_URL"] = "sqlite://"
os.environ["REVIEWSYNC_UPLOADS_DIR"] = tempfile.mkdtemp(prefix="reviewsync-uploads-")
os.environ.pop("REVIEWSYNC_CONFLICT_POLICY", None)

import pytest  # noqa: E402

from reviewsync.server.database import reset_database  # noqa: E402


@pytest.fixture(autouse=True)
def clean_server_db():
    reset_database()
    yield

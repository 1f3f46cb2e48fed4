"""Session directory layout for persisted step snapshots.

Layout under the project root:

    .stepwise/sessions/<session-slug>/<target-slug>_<md5[:8]>/
        .gitignore
        <YYYYMMDD_HHMMSS_LLL>/
"""

import hashlib
import logging
import re
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

SESSIONS_DIR = Path(".stepwise") / "sessions"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def slugify(text: str) -> str:
    """Lowercase text with runs of non-alphanumerics collapsed to '_'."""
    return re.sub(r'[^a-z0-9]+', '_', text.lower()).strip('_')


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as YYYYMMDD_HHMMSS_LLL (milliseconds)."""
    return f"{moment.strftime(TIMESTAMP_FORMAT)}_{moment.microsecond // 1000:03d}"


class SessionManager:
    """Maps a run to its session directories and mints session timestamps."""

    def __init__(self, root: Optional[Path] = None):
        """
        Initialize session manager.

        Args:
            root: Project root holding .stepwise/ (default: current directory)
        """
        self.root = Path(root) if root else Path.cwd()
        self._lock = threading.Lock()
        self._last_timestamp: Optional[str] = None

    @property
    def sessions_root(self) -> Path:
        return self.root / SESSIONS_DIR

    def session_identity_path(self, session_name: str, file: Optional[str]) -> Path:
        """Directory holding every timestamped attempt of one session and target."""
        session_slug = slugify(session_name) or "session"
        if file:
            file_slug = slugify(Path(file).name) or "target"
            file_hash = hashlib.md5(file.encode('utf-8')).hexdigest()[:8]
            target_dir = f"{file_slug}_{file_hash}"
        else:
            target_dir = "targetless"
        return self.sessions_root / session_slug / target_dir

    def create_new_session(self, run: Any) -> str:
        """
        Mint a fresh session timestamp for the run.

        Timestamps are unique per manager; a collision within the same
        millisecond moves the timestamp forward by one millisecond.
        """
        with self._lock:
            timestamp = format_timestamp(datetime.now(timezone.utc))
            while self._last_timestamp is not None and timestamp <= self._last_timestamp:
                timestamp = self._bump(self._last_timestamp)
            self._last_timestamp = timestamp

        run.session_timestamp = timestamp
        logger.debug(f"Created session {run.session_name} at {timestamp}")
        return timestamp

    def _bump(self, timestamp: str) -> str:
        moment = datetime.strptime(timestamp, f"{TIMESTAMP_FORMAT}_%f")
        return format_timestamp(moment + timedelta(milliseconds=1))

    def ensure_session_directory(self, run: Any, timestamp: str) -> Path:
        """Create (if needed) and return the timestamp directory for a run."""
        identity_path = self.session_identity_path(run.session_name, run.file)
        session_dir = identity_path / timestamp
        session_dir.mkdir(parents=True, exist_ok=True)

        gitignore = identity_path / ".gitignore"
        if not gitignore.exists():
            gitignore.write_text("*\n")

        return session_dir

    def find_session_directory(
        self,
        session_name: str,
        file: Optional[str],
        timestamp: Optional[str] = None
    ) -> Optional[Path]:
        """
        Locate a session timestamp directory.

        Args:
            session_name: Session name
            file: Target path (None for targetless runs)
            timestamp: Exact timestamp; None selects the latest one

        Returns:
            Directory path, or None if nothing matches
        """
        identity_path = self.session_identity_path(session_name, file)
        if not identity_path.is_dir():
            return None

        if timestamp:
            session_dir = identity_path / timestamp
            return session_dir if session_dir.is_dir() else None

        candidates = sorted(
            (path for path in identity_path.iterdir() if path.is_dir()),
            key=lambda path: path.name,
            reverse=True
        )
        return candidates[0] if candidates else None

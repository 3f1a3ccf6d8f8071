"""Shared utility functions."""
import os
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit


def now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def strip_credentials(url: str | None) -> str | None:
    """Remove any ``user:password@`` portion from a remote URL.

    SSH-style remotes (``git@host:org/repo.git``) carry no secret and are
    returned unchanged.
    """
    if not url:
        return None
    parts = urlsplit(url)
    if not parts.scheme or "@" not in parts.netloc:
        return url
    host = parts.netloc.rsplit("@", 1)[1]
    return urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))


def to_like_pattern(value: str) -> str:
    """Convert a ``*`` wildcard pattern into a SQL ``LIKE`` pattern.

    A pattern without any wildcard becomes a contains-match.
    """
    pattern = value.replace("*", "%")
    if "%" not in pattern:
        pattern = f"%{pattern}%"
    return pattern


def atomic_write_text(path: Path | str, text: str) -> None:
    """Write *text* to a temp file beside *path*, then rename it into place.

    Readers see either the previous file or the complete new one.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if tmp_path.exists():
            tmp_path.unlink()
        raise

import re
import secrets
import time
from datetime import datetime, timezone

from .errors import InvalidArgument


def now_iso():
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


_ws_re = re.compile(r"\s+")


def normalize_text(s):
    if s is None:
        return ""
    s = str(s).strip()
    s = _ws_re.sub(" ", s)
    return s


def default_document_title(when=None):
    when = when or datetime.now()
    return f"Document {when.strftime('%Y-%m-%d')}"


def blob_names(ext="jpg"):
    # Millisecond stamp plus a random suffix so two saves in the same tick never collide.
    stamp = f"{int(time.time() * 1000)}_{secrets.token_hex(4)}"
    return f"doc_{stamp}.{ext}", f"thumb_{stamp}.{ext}"


def escape_like(q):
    return q.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def to_id(value):
    """Coerce an entity id to int; only ints and digit strings are accepted."""
    if isinstance(value, bool):
        raise InvalidArgument(f"invalid id: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise InvalidArgument(f"invalid id: {value!r}")


def to_optional_int(value):
    if value in (None, "", "null", "root"):
        return None
    return to_id(value)

import random
import re
import string
import uuid
from typing import Any
from urllib.parse import urlencode, urlsplit, urlunsplit, parse_qsl

from constants import ROOM_CODE_LENGTH, MAX_DISPLAY_NAME_LENGTH

ROOM_CODE_PATTERN = re.compile(rf"^\d{{{ROOM_CODE_LENGTH}}}$")


def generate_random_slug(length: int = 20) -> str:
    return ''.join(random.choices(string.ascii_letters + string.digits, k=length))


def generate_id() -> str:
    return uuid.uuid4().hex[:12]


def create_room_code() -> str:
    return str(random.randrange(10 ** ROOM_CODE_LENGTH)).zfill(ROOM_CODE_LENGTH)


def normalize_room_code(value: Any) -> str:
    """Strip everything but digits and keep the first ROOM_CODE_LENGTH of them."""
    if value is None:
        return ""
    return re.sub(r"\D", "", str(value))[:ROOM_CODE_LENGTH]


def is_valid_room_code(code: Any) -> bool:
    return bool(ROOM_CODE_PATTERN.match(str(code)))


def sanitize_display_name(name: Any) -> str:
    if name is None:
        return ""
    collapsed = re.sub(r"\s+", " ", str(name).strip())
    return collapsed[:MAX_DISPLAY_NAME_LENGTH]


def build_join_url(base_url: str, room_code: str) -> str:
    """Return base_url with ?code=<room_code> set, or "" for an unusable base."""
    parts = urlsplit(base_url or "")
    if not parts.scheme or not parts.netloc:
        return ""
    query = dict(parse_qsl(parts.query))
    query["code"] = normalize_room_code(room_code)
    path = parts.path or "/"
    return urlunsplit((parts.scheme, parts.netloc, path, urlencode(query), parts.fragment))

# core/ids.py
"""
Identifier normalization.

Runner, event and activity ids are opaque ASCII tokens: a type prefix plus
8 alphanumerics (``act_1a2b3c4d``). Devices shipped before the prefixed
format send the bare 8 character token; both are accepted here and turned
into an ``EntityId`` so nothing past this module sees the raw value.
"""
import re
import secrets
from dataclasses import dataclass
from enum import Enum

from .errors import InvalidInput


class IdKind(Enum):
    RUNNER = "usr"
    EVENT = "evt"
    ACTIVITY = "act"


TOKEN_LENGTH = 8
SHARE_TOKEN_LENGTH = 16

_PREFIXED = re.compile(r"^(usr|evt|act)_([A-Za-z0-9]{%d})$" % TOKEN_LENGTH)
_LEGACY = re.compile(r"^[A-Za-z0-9]{%d}$" % TOKEN_LENGTH)


@dataclass(frozen=True)
class EntityId:
    kind: IdKind
    token: str

    def __str__(self):
        return f"{self.kind.value}_{self.token}"


def normalize_id(raw, kind: IdKind) -> EntityId:
    """Parse ``raw`` as an id of ``kind``, accepting the legacy bare token."""
    if isinstance(raw, EntityId):
        if raw.kind is not kind:
            raise InvalidInput(f"expected a {kind.name.lower()} id, got {raw}")
        return raw
    if not isinstance(raw, str):
        raise InvalidInput(f"{kind.name.lower()} id must be a string")
    value = raw.strip()
    match = _PREFIXED.match(value)
    if match:
        if match.group(1) != kind.value:
            raise InvalidInput(f"expected a {kind.name.lower()} id, got {value!r}")
        return EntityId(kind, match.group(2))
    if _LEGACY.match(value):
        return EntityId(kind, value)
    raise InvalidInput(f"malformed {kind.name.lower()} id: {value!r}")


def generate_id(kind: IdKind) -> EntityId:
    return EntityId(kind, secrets.token_hex(TOKEN_LENGTH // 2))


def generate_share_token() -> str:
    return f"sh_{secrets.token_hex(SHARE_TOKEN_LENGTH // 2)}"


_SHARE = re.compile(r"^sh_[A-Za-z0-9]{%d}$" % SHARE_TOKEN_LENGTH)


def parse_share_token(raw) -> str:
    """Spectator link token. No legacy form; it only ever came from ``generate_share_token``."""
    if not isinstance(raw, str) or not _SHARE.match(raw.strip()):
        raise InvalidInput("malformed share token")
    return raw.strip()

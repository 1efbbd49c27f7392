"""
auth/secure_id.py -- Reversible obfuscation of internal identifiers.

Internal ids (sequential integers and hex object ids) never leave the service
in raw form; the API exposes Hashids strings instead. The mapping is a pure
function of the salt: no persisted state, no I/O, safe to call from any
request concurrently.

Two domains are supported:
  encode / decode          -- non-negative integers
  encode_hex / decode_hex  -- lowercase hex strings (storage object ids)

None passes through unchanged in every direction. Anything that cannot be
encoded or decoded raises InvalidIdentifier.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import re

from hashids import Hashids

from auth.errors import InvalidIdentifier

_HEX_RE = re.compile(r"^[0-9a-f]+$")


class SecureIdCodec:
    """Hashids-backed codec bound to one salt.

    Usage:
        codec = SecureIdCodec(salt=settings.hashid_salt)
        opaque = codec.encode(42)
        codec.decode(opaque)  # 42
    """

    def __init__(self, salt: str, min_length: int = 0) -> None:
        self._hashids = Hashids(salt=salt, min_length=min_length)

    def encode(self, id: int | None) -> str | None:
        if id is None:
            return None
        if isinstance(id, bool) or not isinstance(id, int) or id < 0:
            raise InvalidIdentifier(f"Cannot encode identifier {id!r}", id=id)
        return self._hashids.encode(id)

    def decode(self, opaque: str | None) -> int | None:
        if opaque is None:
            return None
        numbers = self._hashids.decode(opaque) if isinstance(opaque, str) else ()
        # Hashids returns () for anything it did not produce itself.
        if len(numbers) != 1:
            raise InvalidIdentifier(f"Malformed identifier {opaque!r}", id=opaque)
        return numbers[0]

    def encode_hex(self, id: str | None) -> str | None:
        if id is None:
            return None
        if not isinstance(id, str) or not _HEX_RE.match(id):
            raise InvalidIdentifier(f"Cannot encode identifier {id!r}", id=id)
        opaque = self._hashids.encode_hex(id)
        if not opaque:
            raise InvalidIdentifier(f"Cannot encode identifier {id!r}", id=id)
        return opaque

    def decode_hex(self, opaque: str | None) -> str | None:
        if opaque is None:
            return None
        decoded = self._hashids.decode_hex(opaque) if isinstance(opaque, str) else ""
        if not decoded:
            raise InvalidIdentifier(f"Malformed identifier {opaque!r}", id=opaque)
        return decoded

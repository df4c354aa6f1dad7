"""Time-based one-time passwords (RFC 6238, HMAC-SHA1, 30 second step, 6 digits)."""
import base64
import binascii
import hashlib
import hmac
import struct
import time
from datetime import datetime
from typing import Optional, Union

from .utils import InvalidSecret

PERIOD = 30
DIGITS = 6

Timestamp = Union[int, float, datetime]


def decode_secret(secret: str) -> bytes:
    """Decode a base32 shared secret into raw key bytes.

    Surrounding whitespace is ignored, lower-case letters are accepted and
    ``=`` padding is optional. Raises :class:`InvalidSecret` on anything else.
    """
    secret_b32 = secret.strip().upper()
    # add padding if needed
    pad = len(secret_b32) % 8
    if pad:
        secret_b32 += "=" * (8 - pad)
    try:
        return base64.b32decode(secret_b32)
    except (binascii.Error, ValueError) as e:
        raise InvalidSecret(f"invalid base32 secret: {e}") from e


def _unix_seconds(at_time: Optional[Timestamp]) -> float:
    if at_time is None:
        return time.time()
    if isinstance(at_time, datetime):
        return at_time.timestamp()
    return at_time


def time_counter(at_time: Optional[Timestamp] = None) -> int:
    """Number of whole PERIOD-second steps since the unix epoch."""
    return int(_unix_seconds(at_time) // PERIOD)


def generate_code(secret: str, at_time: Optional[Timestamp] = None) -> str:
    """Return the zero-padded 6 digit code for ``secret`` at ``at_time`` (default: now).

    Every ``at_time`` in the same 30 second window yields the same code.
    """
    key = decode_secret(secret)
    counter = time_counter(at_time)
    if counter < 0:
        raise ValueError(f"time before the unix epoch: {at_time!r}")
    msg = struct.pack(">Q", counter)
    digest = hmac.new(key, msg, hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    code_int = (struct.unpack(">I", digest[offset:offset + 4])[0] & 0x7FFFFFFF) % (10 ** DIGITS)
    return str(code_int).zfill(DIGITS)

"""Tests for alfred_authenticator.totp (base32 decoding and code generation)."""
import base64
import hashlib
import hmac
import struct
from datetime import datetime, timezone

import pytest

from alfred_authenticator import totp as totp_module
from alfred_authenticator.totp import decode_secret, generate_code, time_counter
from alfred_authenticator.utils import InvalidSecret

# RFC 6238 appendix B uses the ASCII key "12345678901234567890" for SHA-1
RFC_SECRET = base64.b32encode(b"12345678901234567890").decode()


def _expected_totp(secret_b32: str, at: int) -> str:
    key = base64.b32decode(secret_b32)
    digest = hmac.new(key, struct.pack(">Q", at // 30), hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    code = (struct.unpack(">I", digest[offset:offset + 4])[0] & 0x7FFFFFFF) % 10 ** 6
    return str(code).zfill(6)


# ---------------------------------------------------------------------------
# decode_secret
# ---------------------------------------------------------------------------

def test_decode_secret_padding_optional():
    assert decode_secret("JBSWY3DPEHPK3PXP") == b"Hello!\xde\xad\xbe\xef"
    assert decode_secret("GEZDGNBVGY") == decode_secret("GEZDGNBVGY======")


def test_decode_secret_accepts_lower_case_and_whitespace():
    assert decode_secret("  jbswy3dpehpk3pxp\n") == decode_secret("JBSWY3DPEHPK3PXP")


@pytest.mark.parametrize("bad", [
    "!!!not-valid-base32!!!",
    "JBSWY3DPEHPK3PX1",   # 1 is not in the alphabet
    "A",                  # would need 7 padding characters
    "JBSWY3DPEHPK3PXP=",  # padding in the wrong place
    "ÄÖÜ",
])
def test_decode_secret_rejects_malformed_input(bad):
    with pytest.raises(InvalidSecret):
        decode_secret(bad)


# ---------------------------------------------------------------------------
# generate_code
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("at, code", [
    (59, "287082"),
    (1111111109, "081804"),
    (1111111111, "050471"),
    (1234567890, "005924"),
    (2000000000, "279037"),
    (20000000000, "353130"),
])
def test_generate_code_rfc6238_vectors(at, code):
    assert generate_code(RFC_SECRET, at) == code


def test_generate_code_matches_reference_algorithm():
    secret = "JBSWY3DPEHPK3PXP"
    for at in (0, 30, 1700000000, 1700000029):
        assert generate_code(secret, at) == _expected_totp(secret, at)


def test_generate_code_constant_within_window():
    # 1111111080..1111111109 share the counter 37037036
    assert time_counter(1111111080) == time_counter(1111111109) == 37037036
    assert generate_code(RFC_SECRET, 1111111080) == generate_code(RFC_SECRET, 1111111109)
    assert generate_code(RFC_SECRET, 1111111109.999) == "081804"
    assert generate_code(RFC_SECRET, 1111111110) != "081804"


def test_generate_code_is_zero_padded_six_digits():
    code = generate_code(RFC_SECRET, 1234567890)
    assert code == "005924"
    for at in range(0, 30 * 50, 30):
        c = generate_code("JBSWY3DPEHPK3PXP", at)
        assert len(c) == 6 and c.isdigit()


def test_generate_code_accepts_datetime():
    at = datetime.fromtimestamp(59, tz=timezone.utc)
    assert generate_code(RFC_SECRET, at) == "287082"


def test_generate_code_defaults_to_now(monkeypatch):
    monkeypatch.setattr(totp_module.time, "time", lambda: 1111111111.5)
    assert generate_code(RFC_SECRET) == "050471"


def test_generate_code_invalid_secret():
    with pytest.raises(InvalidSecret):
        generate_code("!!!not-valid-base32!!!", 59)


def test_generate_code_before_epoch():
    with pytest.raises(ValueError):
        generate_code(RFC_SECRET, -31)

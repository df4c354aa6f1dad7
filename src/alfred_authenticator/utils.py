import json
from pathlib import Path
from typing import Optional


def redact_secret(secret: Optional[str]) -> Optional[str]:
    """Shorten a shared secret for safe display (keeps a readable prefix + ellipsis)."""
    if not secret:
        return secret
    if len(secret) <= 4:
        return "…"
    return secret[:4] + "…"


class AuthenticatorError(RuntimeError):
    """Base class for errors surfaced to the command boundary.

    The CLI prints ``str(err)`` and exits non-zero for any subclass.
    """


class StorageUnavailable(AuthenticatorError):
    """The secret store cannot be created, opened or locked (or is closed)."""


class WriteFailed(AuthenticatorError):
    """A mutation of the secret store failed; nothing was applied."""


class InvalidSecret(AuthenticatorError):
    """A shared secret is not valid base32."""


class InvalidKey(AuthenticatorError):
    """An account key is empty or cannot be stored as UTF-8 text."""


class ConfigError(AuthenticatorError):
    """A saved configuration value has the wrong type or range."""


def display_key(key: str) -> str:
    """Key as printable text; undecodable argv bytes become U+FFFD."""
    return key.encode("utf-8", "surrogateescape").decode("utf-8", "replace")


def write_json(path: Path, obj, *, indent: int = 2):
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(obj, f, indent=indent, ensure_ascii=False)


def dump_compact(obj) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)

import json
import logging
import math
import os
from pathlib import Path
from typing import List, Optional, Sequence

from .menu import Item, add_item, del_item, items_document, key_item
from .store import SecretStore
from .totp import Timestamp, generate_code
from .utils import ConfigError, InvalidKey, display_key, redact_secret, write_json

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("~/.google-authenticator/config.db")


# Code generation & secret management ---------------------------------------
def generate(store: SecretStore, key: str, at_time: Optional[Timestamp] = None) -> Optional[str]:
    """Return the current code for ``key``, or None when no secret is stored.

    A missing key is not an error so the Alfred menu simply shows nothing.
    """
    secret = store.get(key)
    if secret is None:
        logger.debug("no secret stored for [%s]", key)
        return None
    return generate_code(secret, at_time)


def add(store: SecretStore, key: str, secret: str, at_time: Optional[Timestamp] = None) -> str:
    """Validate ``secret`` by generating one code, then store it under ``key``.

    Secrets are only validated here; ``generate`` trusts whatever was stored.
    """
    if not key:
        raise InvalidKey("key must not be empty")
    generate_code(secret, at_time)
    logger.debug("adding [%s] with secret %s", key, redact_secret(secret))
    store.put(key, secret)
    return f"add [{display_key(key)}] secret success"


def delete(store: SecretStore, key: str) -> str:
    store.delete(key)
    return f"del [{display_key(key)}] secret success"


def query(store: SecretStore, terms: Sequence[str]) -> dict:
    """Build the Alfred script filter document for the words typed so far.

    ``terms`` may be separate words or a single string as Alfred passes
    ``{query}``; either way it is split on whitespace.
    """
    args = " ".join(terms).split()
    items: List[Item] = []
    verb = args[0].lower() if args else ""

    if not args:
        items = [key_item(k) for k in store.keys()]
    elif len(args) == 1:
        if verb == "add":
            items = [add_item()]
        elif verb == "del":
            items = [del_item(k) for k in store.keys()]
        else:
            items = [key_item(k) for k in store.keys() if args[0] in k]
    elif len(args) == 2:
        if verb == "add":
            items = [add_item(args[1])]
        elif verb == "del":
            items = [del_item(k) for k in store.keys() if args[1] in k]
    elif len(args) == 3:
        if verb == "add":
            items = [add_item(args[1], args[2])]

    return items_document(items)


# Configuration persistence -------------------------------------------------
def _config_file_path() -> Path:
    """Return path to config file (respect ALFRED_AUTHENTICATOR_CONFIG or XDG_CONFIG_HOME).
    Uses `~/.config/alfred-authenticator/config.json` by default."""
    cfg = os.environ.get("ALFRED_AUTHENTICATOR_CONFIG")
    if cfg:
        return Path(cfg)
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / "alfred-authenticator" / "config.json"


def save_config(data: dict) -> Path:
    """Save configuration (JSON) to the configured config file location and restrict file perms."""
    p = _config_file_path()
    write_json(p, data)
    try:
        p.chmod(0o600)
    except OSError as e:
        logger.warning("could not restrict permissions on %s: %s", p, e)
    return p


def load_config() -> dict:
    p = _config_file_path()
    if not p.exists():
        return {}
    try:
        with p.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("ignoring unreadable config %s: %s", p, e)
        return {}
    return data if isinstance(data, dict) else {}


def resolve_db_path(explicit: Optional[str] = None, cfg: Optional[dict] = None) -> Path:
    """Pick the store location: explicit flag, then ALFRED_AUTHENTICATOR_DB,
    then ``db_path`` from the config file, then ~/.google-authenticator/config.db."""
    if explicit:
        return Path(explicit).expanduser()
    env = os.environ.get("ALFRED_AUTHENTICATOR_DB")
    if env:
        return Path(env).expanduser()
    if cfg is None:
        cfg = load_config()
    db_path = cfg.get("db_path")
    if db_path is not None and not isinstance(db_path, str):
        raise ConfigError(f"db_path in {_config_file_path()} must be a string, got {db_path!r}")
    if db_path:
        return Path(db_path).expanduser()
    return DEFAULT_DB_PATH.expanduser()


def parse_lock_timeout(value) -> float:
    """Seconds to wait for the store lock; must be a finite number >= 0."""
    if isinstance(value, bool):
        raise ConfigError(f"lock_timeout must be a number of seconds, got {value!r}")
    try:
        seconds = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"lock_timeout must be a number of seconds, got {value!r}") from e
    if not math.isfinite(seconds) or seconds < 0:
        raise ConfigError(f"lock_timeout must be a finite number >= 0, got {value!r}")
    return seconds


def update_config(*, db_path: Optional[str] = None, lock_timeout=None) -> Path:
    """Merge the given settings into the saved config and write it back."""
    cfg = load_config()
    if db_path is not None:
        cfg["db_path"] = db_path
    if lock_timeout is not None:
        cfg["lock_timeout"] = parse_lock_timeout(lock_timeout)
    return save_config(cfg)

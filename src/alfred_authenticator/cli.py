import argparse
import logging
import sys

from .authenticator import (add, delete, generate, load_config, parse_lock_timeout, query,
                            resolve_db_path, update_config)
from .store import SecretStore
from .utils import AuthenticatorError, ConfigError, dump_compact


def _seconds(value: str) -> float:
    try:
        return parse_lock_timeout(value)
    except ConfigError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="alfred-authenticator",
        description="Generate TOTP codes and Alfred menus from locally stored secrets")
    p.add_argument("--key", help="account key to generate a code for (same as `generate --key`)")
    p.add_argument("--db", default=argparse.SUPPRESS,
                   help="path to the secret store (overrides ALFRED_AUTHENTICATOR_DB and saved config)")
    p.add_argument("--lock-timeout", type=_seconds, default=argparse.SUPPRESS,
                   help="seconds to wait for another invocation to release the store (overrides saved config)")
    p.add_argument("--verbose", "-v", action="store_true",
                   help="log debug output to stderr")
    sub = p.add_subparsers(dest="cmd")

    g = sub.add_parser("generate", help="print the current code for an account")
    g.add_argument("--key", required=True, help="account key")

    a = sub.add_parser("add", help="add (or replace) an account secret")
    a.add_argument("--key", required=True, help="account key")
    a.add_argument("--secret", required=True, help="base32 shared secret")

    d = sub.add_parser("del", help="delete an account secret")
    d.add_argument("--key", required=True, help="account key")

    q = sub.add_parser("query", help="print an Alfred script filter menu as JSON")
    q.add_argument("terms", nargs="*",
                   help="words typed so far: nothing, a filter, `add [key [secret]]` or `del [filter]`")

    c = sub.add_parser("config", help="save default settings to the config file")
    c.add_argument("--db-path", dest="cfg_db_path",
                   help="store location to use when --db and ALFRED_AUTHENTICATOR_DB are not set")
    c.add_argument("--lock-timeout", dest="cfg_lock_timeout", type=_seconds,
                   help="seconds to wait for another invocation to release the store")

    return p


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr,
                            format="%(levelname)s %(name)s: %(message)s")

    cmd = args.cmd
    if cmd is None and args.key:
        cmd = "generate"
    if cmd is None:
        parser.print_help()
        return

    try:
        if cmd == "config":
            p = update_config(db_path=args.cfg_db_path, lock_timeout=args.cfg_lock_timeout)
            print(f"config saved to {p}", end="")
            return

        # merge saved config with CLI args (CLI overrides saved config)
        cfg = load_config()
        db_path = resolve_db_path(getattr(args, "db", None), cfg)
        lock_timeout = args.lock_timeout if hasattr(
            args, "lock_timeout") else parse_lock_timeout(cfg.get("lock_timeout", 0))

        with SecretStore.open(db_path, lock_timeout=lock_timeout) as store:
            if cmd == "generate":
                code = generate(store, args.key)
                if code is not None:
                    print(code)
            elif cmd == "add":
                print(add(store, args.key, args.secret), end="")
            elif cmd == "del":
                print(delete(store, args.key), end="")
            elif cmd == "query":
                print(dump_compact(query(store, args.terms)), end="")
    except AuthenticatorError as e:
        print(f"error: {e}")
        sys.exit(1)

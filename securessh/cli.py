"""
SecureSSH - Command Line

Usage:
    securessh init                      # Set master password
    securessh add [user@host:port]      # Add a host (prompts for the rest)
    securessh list                      # List hosts
    securessh <alias>                   # Connect (fuzzy alias)
    securessh connect <alias>           # Same as above
    securessh password <alias> [--copy] # Show / copy a host password
    securessh modify <alias>            # Edit a host
    securessh delete <alias>            # Remove a host
    securessh reset                     # Delete the whole vault
    securessh complete [prefix]         # Alias suggestions for shell completion
"""

import argparse
import getpass
import logging
import sys
from typing import List, Optional

from . import crypto
from .config import Settings
from .errors import ConfigError, ConnectionFailure, ConnectivityTimeout, VaultError
from .remote import parse_host_string
from .session import Session

logger = logging.getLogger(__name__)

COMMANDS = ("init", "add", "list", "connect", "password", "modify", "delete", "reset", "complete")


def prompt_master_password() -> str:
    return getpass.getpass("Enter master password: ")


def ask(label: str, default: Optional[str] = None) -> str:
    suffix = f" [{default}]" if default not in (None, "") else ""
    value = input(f"{label}{suffix}: ").strip()
    return value or (default or "")


def ask_port(label: str, default: int) -> int:
    raw = ask(label, str(default))
    try:
        return int(raw)
    except ValueError:
        print(f"Invalid port {raw!r}, using {default}.")
        return default


def confirm(label: str) -> bool:
    return input(f"{label} [y/N]: ").strip().lower() in ("y", "yes")


# =============================================================================
# Commands
# =============================================================================

def cmd_init(session: Session, args) -> int:
    if session.is_initialized:
        print("Vault already initialized.")
        return 1
    pw = getpass.getpass("Enter master password: ")
    pw2 = getpass.getpass("Confirm master password: ")
    session.initialize(pw, pw2)
    print(f"✓ Master password set. Vault: {session.settings.vault_path}")
    return 0


def cmd_add(session: Session, args) -> int:
    session.unlock()

    host, user, port = "", "", 22
    if args.target:
        host, user, port = parse_host_string(args.target)

    alias = ask("Alias")
    if not alias:
        print("Alias required.")
        return 1
    host = host or ask("Host address")
    user = user or ask("Username")
    if args.generate:
        password = crypto.generate_password(args.length, not args.no_symbols)
        print(f"Generated: {password}")
    else:
        password = getpass.getpass("Password: ")
    if not args.target:
        port = ask_port("Port", 22)

    record = session.add_host(alias, host, user, password, port)
    print(f"✓ Added '{record.alias}' ({record.username}@{record.address}:{record.port})")

    if not args.no_test and input("Test connection? [Y/n]: ").strip().lower() not in ("n", "no"):
        _probe(session, record.alias)
    return 0


def cmd_list(session: Session, args) -> int:
    hosts = session.list_hosts()
    if not hosts:
        print("No hosts found.")
        return 0
    print(f"\n{'#':<4} {'Alias':<20} {'Host':<30} {'User':<15} Port")
    print("-" * 76)
    for i, h in enumerate(hosts, 1):
        print(f"{i:<4} {h.alias:<20} {h.address:<30} {h.username:<15} {h.port}")
    return 0


def cmd_connect(session: Session, args) -> int:
    profile = session.connection_profile(args.alias)
    session.ssh.check_dependencies()
    print(f"Connecting to {profile.address} as {profile.username}...")
    session.ssh.connect(profile)
    return 0


def cmd_password(session: Session, args) -> int:
    # Exact alias only, never fuzzy
    record = session.get_host(args.alias)
    secret = session.reveal_password(record)
    if args.copy:
        try:
            import pyperclip
            pyperclip.copy(secret)
            print(f"✓ Password for '{record.alias}' copied to clipboard!")
            return 0
        except ImportError:
            print("(pyperclip not installed - run: pip install pyperclip)")
    print(f"Password for '{record.alias}' ({record.username}@{record.address}:{record.port}): {secret}")
    return 0


def cmd_modify(session: Session, args) -> int:
    session.unlock()
    record = session.get_host(args.alias)

    print("\nCurrent configuration:")
    print(f"  Alias: {record.alias}")
    print(f"  Host: {record.address}")
    print(f"  User: {record.username}")
    print(f"  Port: {record.port}")
    print("\nPress Enter to keep the current value.")

    updated = session.modify_host(
        record.alias,
        new_alias=ask("New alias", record.alias),
        address=ask("New host", record.address),
        username=ask("New user", record.username),
        password=getpass.getpass("New password (Enter to keep): ") or None,
        port=ask_port("New port", record.port),
    )
    print(f"✓ Host '{updated.alias}' modified.")

    if not args.no_test and input("Test connection? [Y/n]: ").strip().lower() not in ("n", "no"):
        _probe(session, updated.alias)
    return 0


def cmd_delete(session: Session, args) -> int:
    record = session.get_host(args.alias)
    if not confirm(f"Are you sure you want to delete host '{record.alias}'?"):
        print("Operation cancelled.")
        return 0
    session.delete_host(record.alias)
    print("✓ Host deleted.")
    return 0


def cmd_reset(session: Session, args) -> int:
    if not session.store.exists():
        print("No configuration to reset.")
        return 0
    print("\nWARNING: This will delete ALL your SSH hosts and the master password!")
    print("This action cannot be undone.\n")
    if input("Are you sure you want to reset? [yes/no]: ").strip().lower() not in ("y", "yes"):
        print("Reset cancelled.")
        return 0
    if input("Type 'RESET' to confirm: ").strip() not in ("RESET", "reset"):
        print("Reset cancelled.")
        return 0
    session.reset()
    print("\n✓ Vault deleted. Run 'securessh init' to start over.")
    return 0


def cmd_complete(session: Session, args) -> int:
    for alias in session.suggest(args.prefix or ""):
        print(alias)
    return 0


def _probe(session: Session, alias: str) -> None:
    try:
        session.probe(alias)
        print("✓ Connection test successful!")
    except (ConnectivityTimeout, ConnectionFailure, OSError) as e:
        print(f"Connection test failed: {e}")


# =============================================================================
# Entry point
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="securessh",
        description="SSH connection manager with an encrypted password vault",
    )
    parser.add_argument("--vault", help="vault file path (default ~/.securessh/vault.json)")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("init", help="initialize master password").set_defaults(func=cmd_init)

    p = sub.add_parser("add", help="add a new SSH host")
    p.add_argument("target", nargs="?", help="user@host:port")
    p.add_argument("--generate", action="store_true", help="generate a random password")
    p.add_argument("--length", type=int, default=20)
    p.add_argument("--no-symbols", action="store_true")
    p.add_argument("--no-test", action="store_true", help="skip the connection test")
    p.set_defaults(func=cmd_add)

    sub.add_parser("list", help="list all SSH hosts").set_defaults(func=cmd_list)

    p = sub.add_parser("connect", help="connect to a host by alias")
    p.add_argument("alias")
    p.set_defaults(func=cmd_connect)

    p = sub.add_parser("password", help="show the password for a host")
    p.add_argument("alias")
    p.add_argument("--copy", action="store_true", help="copy to clipboard instead of printing")
    p.set_defaults(func=cmd_password)

    p = sub.add_parser("modify", help="modify a host by alias")
    p.add_argument("alias")
    p.add_argument("--no-test", action="store_true", help="skip the connection test")
    p.set_defaults(func=cmd_modify)

    p = sub.add_parser("delete", help="delete a host by alias")
    p.add_argument("alias")
    p.set_defaults(func=cmd_delete)

    sub.add_parser("reset", help="delete all configuration").set_defaults(func=cmd_reset)

    p = sub.add_parser("complete", help="print alias suggestions")
    p.add_argument("prefix", nargs="?", default="")
    p.set_defaults(func=cmd_complete)

    return parser


def _normalize_argv(argv: List[str]) -> List[str]:
    """`securessh web1` is shorthand for `securessh connect web1`."""
    for i, arg in enumerate(argv):
        if arg == "--vault":
            continue
        if i > 0 and argv[i - 1] == "--vault":
            continue
        if arg.startswith("-"):
            continue
        if arg not in COMMANDS:
            return argv[:i] + ["connect"] + argv[i:]
        break
    return argv


def main(argv: Optional[List[str]] = None) -> int:
    argv = _normalize_argv(list(sys.argv[1:] if argv is None else argv))
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = Settings.from_env(args.vault)
    except ConfigError as e:
        print(f"FATAL: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not getattr(args, "func", None):
        parser.print_help()
        return 0

    try:
        with Session(settings, password_provider=prompt_master_password) as session:
            return args.func(session, args)
    except VaultError as e:
        print(f"ERROR: {e}")
        return 1
    except ValueError as e:
        print(f"ERROR: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nExiting...")
        return 130


if __name__ == "__main__":
    sys.exit(main())

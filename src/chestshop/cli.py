from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, TextIO

from .data.codec import decode_snapshot
from .data.manager import SNAPSHOT_FILENAME
from .exceptions import CorruptSnapshotError
from .paths import default_data_dir

logger = logging.getLogger(__name__)


_CLI_HANDLER_NAME = "chestshop-admin"
LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def configure_logging(level: int = logging.INFO, stream: Optional[TextIO] = None) -> logging.Handler:
    """Route ``chestshop`` records to ``stream`` (stderr by default).

    Only the package logger is touched. Calling again swaps the handler this
    function installed earlier and leaves any other handler alone.
    """
    package_logger = logging.getLogger("chestshop")
    for existing in list(package_logger.handlers):
        if existing.get_name() == _CLI_HANDLER_NAME:
            package_logger.removeHandler(existing)
            existing.close()
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.set_name(_CLI_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    return handler


def _data_dir(args: argparse.Namespace) -> Path:
    return Path(args.data_dir) if args.data_dir else default_data_dir()


def _read_snapshot(path: Path):
    """Decode without a ShopManager so inspecting never moves a bad file aside."""
    return decode_snapshot(path.read_text(encoding="utf-8"))


def _cmd_list(args: argparse.Namespace) -> int:
    path = _data_dir(args) / SNAPSHOT_FILENAME
    if not path.exists():
        print(f"No shops saved in {path.parent}")
        return 0
    try:
        shops, _ = _read_snapshot(path)
    except (OSError, UnicodeDecodeError, CorruptSnapshotError) as e:
        print(f"INVALID: {path}: {e}")
        return 1
    if args.owner:
        wanted = args.owner.lower()
        shops = [s for s in shops if s.owner_name.lower() == wanted]
    for shop in shops:
        print(
            f"{shop.id}  {shop.shop_type:<16}  {shop.owner_name:<16}  "
            f"items={len(shop.items):<3}  earnings={shop.earnings:.2f}  sign={shop.sign_location.key}  "
            f"chest={shop.chest_location.key}"
        )
    print(f"{len(shops)} shop(s)")
    return 0


def _cmd_validate(args: argparse.Namespace) -> int:
    path = _data_dir(args) / SNAPSHOT_FILENAME
    logger.debug("Validating %s", path)
    if not path.exists():
        print(f"OK: {path} does not exist (empty registry)")
        return 0
    try:
        shops, skipped = _read_snapshot(path)
    except (OSError, UnicodeDecodeError, CorruptSnapshotError) as e:
        print(f"INVALID: {path}: {e}")
        return 1
    signs = set()
    chests = set()
    collisions = 0
    for shop in shops:
        if shop.sign_location.key in signs or shop.chest_location.key in chests:
            collisions += 1
        signs.add(shop.sign_location.key)
        chests.add(shop.chest_location.key)
    if skipped or collisions:
        print(f"INVALID: {path}: {skipped} invalid record(s), {collisions} location collision(s)")
        return 1
    print(f"OK: {path} ({len(shops)} shops)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="chestshop-admin", description="Inspect ChestShop data offline")
    p.add_argument("--debug", action="store_true", help="Enable verbose debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    ls = sub.add_parser("list", help="List saved shops")
    ls.add_argument("--data-dir", default=None, help="Directory holding shops.json")
    ls.add_argument("--owner", default=None, help="Only shops owned by this player name")
    ls.set_defaults(func=_cmd_list)

    v = sub.add_parser("validate", help="Check that shops.json loads cleanly")
    v.add_argument("--data-dir", default=None, help="Directory holding shops.json")
    v.set_defaults(func=_cmd_validate)

    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(level=logging.DEBUG if args.debug else logging.WARNING)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

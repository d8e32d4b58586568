import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from classchat.accounts import create_class
from classchat.config import load_settings
from classchat.database import Database
from classchat.errors import DomainError


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a ClassChat class")
    parser.add_argument("name", help="Display name for the class")
    parser.add_argument("code", help="Unique five digit join code")
    parser.add_argument(
        "--store",
        dest="store_path",
        default=None,
        help="Path to the state document (defaults to CLASSCHAT_STORE_PATH or data/store.json)",
    )
    parser.add_argument("--config", default=None, help="Optional YAML configuration file")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    settings = load_settings(Path(args.config) if args.config else None)
    store_path = Path(args.store_path).expanduser() if args.store_path else settings.store_path

    database = Database.from_path(store_path, bundled_path=settings.bundled_store_path)
    document = database.initialize()

    try:
        item = create_class(document, args.name, args.code.strip())
    except DomainError as exc:  # duplicate codes, bad input
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1

    database.save(document)
    print(f"Created class {item['name']} ({item['id']}) with code {item['code']}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

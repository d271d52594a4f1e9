import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from accounts.config import load_settings
from accounts.database import Database, resolve_database_path
from accounts.errors import InvalidInput
from accounts.users import UserService


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create an account without going through the HTTP API")
    parser.add_argument("name", help="Display name for the user")
    parser.add_argument("email", help="Unique email address")
    parser.add_argument("age", type=int, help="Age in years (0-150)")
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to ACCOUNTS_DB_PATH or data/accounts.sqlite3)",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    db_path = resolve_database_path(args.db_path) if args.db_path else load_settings().database_path

    # No publisher: accounts created here do not trigger a welcome email.
    with Database(db_path) as database:
        try:
            user = UserService(database).create_user(args.name, args.email, args.age)
        except InvalidInput as exc:  # validation failures, duplicates
            print(f"Error: {exc}", file=sys.stderr)
            return 1

    print(f"Created user #{user.id}: {user.name} <{user.email}>, age {user.age}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

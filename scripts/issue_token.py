from pathlib import Path
import argparse
import os
import sys

# Ensure repo root is on sys.path and is the working directory.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
os.chdir(ROOT)

from usage_service.db import Database
from usage_service.config import settings
from usage_service.api.auth import issue_token


def main():
    parser = argparse.ArgumentParser(description="Create a user (if needed) and print a new API token.")
    parser.add_argument("username")
    parser.add_argument("--name", default=None, help="Label stored with the token")
    args = parser.parse_args()

    database = Database(settings.db_path, settings.db_busy_timeout_seconds)
    database.initialize()
    conn = database.connect()
    try:
        token = issue_token(conn, args.username, args.name)
    finally:
        conn.close()
    print(token)


if __name__ == "__main__":
    main()

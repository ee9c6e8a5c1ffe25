from pathlib import Path
import os
import sys

# Ensure repo root is on sys.path and is the working directory.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
os.chdir(ROOT)

from usage_service.db import Database
from usage_service.config import settings

if __name__ == '__main__':
    database = Database(settings.db_path, settings.db_busy_timeout_seconds)
    database.initialize()
    conn = database.connect()
    try:
        users = conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
        profiles = conn.execute("SELECT COUNT(*) FROM submissions").fetchone()[0]
    finally:
        conn.close()
    print('DB ready at', settings.db_path, '| users:', users, '| profiles:', profiles)

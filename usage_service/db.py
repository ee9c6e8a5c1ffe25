import sqlite3
from pathlib import Path

def get_conn(db_path: str, busy_timeout_seconds: float = 30.0) -> sqlite3.Connection:
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    # autocommit; writers open explicit BEGIN IMMEDIATE transactions
    conn = sqlite3.connect(db_path, isolation_level=None, timeout=busy_timeout_seconds)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    return conn


class Database:
    """Storage handle owned by the application lifecycle.

    Holds connection parameters only; every unit of work opens its own
    connection so concurrent requests never share transaction state.
    """

    def __init__(self, db_path: str, busy_timeout_seconds: float = 30.0):
        self.db_path = db_path
        self.busy_timeout_seconds = busy_timeout_seconds

    def connect(self) -> sqlite3.Connection:
        return get_conn(self.db_path, self.busy_timeout_seconds)

    def initialize(self):
        conn = self.connect()
        try:
            migrate(conn)
        finally:
            conn.close()


DDL = [
    """
CREATE TABLE IF NOT EXISTS users (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  username TEXT NOT NULL UNIQUE,
  created_at_utc TEXT NOT NULL
);
""",

    # Bearer tokens (sha256 of the raw token)
    """
CREATE TABLE IF NOT EXISTS api_tokens (
  token_sha256 TEXT PRIMARY KEY,
  user_id INTEGER NOT NULL REFERENCES users(id),
  name TEXT,
  created_at_utc TEXT NOT NULL,
  last_used_at_utc TEXT
);
""",
    "CREATE INDEX IF NOT EXISTS ix_api_tokens_user ON api_tokens(user_id);",

    # Owner profile: exactly one row per user
    """
CREATE TABLE IF NOT EXISTS submissions (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  user_id INTEGER NOT NULL REFERENCES users(id),
  total_tokens INTEGER NOT NULL DEFAULT 0,
  total_cost TEXT NOT NULL DEFAULT '0.0000',
  input_tokens INTEGER NOT NULL DEFAULT 0,
  output_tokens INTEGER NOT NULL DEFAULT 0,
  cache_read_tokens INTEGER NOT NULL DEFAULT 0,
  cache_write_tokens INTEGER NOT NULL DEFAULT 0,
  reasoning_tokens INTEGER NOT NULL DEFAULT 0,
  date_start TEXT,
  date_end TEXT,
  active_days INTEGER NOT NULL DEFAULT 0,
  sources_used TEXT NOT NULL DEFAULT '[]',
  models_used TEXT NOT NULL DEFAULT '[]',
  submission_hash TEXT,
  submit_count INTEGER NOT NULL DEFAULT 0,
  schema_version INTEGER NOT NULL DEFAULT 0,
  created_at_utc TEXT NOT NULL,
  updated_at_utc TEXT NOT NULL
);
""",
    "CREATE UNIQUE INDEX IF NOT EXISTS ux_submissions_user ON submissions(user_id);",

    # Daily record: at most one row per (owner, date)
    """
CREATE TABLE IF NOT EXISTS daily_breakdown (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  submission_id INTEGER NOT NULL REFERENCES submissions(id),
  date TEXT NOT NULL,
  tokens INTEGER NOT NULL DEFAULT 0,
  cost TEXT NOT NULL DEFAULT '0.0000',
  input_tokens INTEGER NOT NULL DEFAULT 0,
  output_tokens INTEGER NOT NULL DEFAULT 0,
  cache_read_tokens INTEGER NOT NULL DEFAULT 0,
  cache_write_tokens INTEGER NOT NULL DEFAULT 0,
  reasoning_tokens INTEGER NOT NULL DEFAULT 0,
  messages INTEGER NOT NULL DEFAULT 0,
  timestamp_ms INTEGER,
  client_breakdown TEXT NOT NULL DEFAULT '{}',
  model_breakdown TEXT NOT NULL DEFAULT '{}',
  updated_at_utc TEXT NOT NULL
);
""",
    "CREATE UNIQUE INDEX IF NOT EXISTS ux_daily_breakdown_day ON daily_breakdown(submission_id, date);",
]

def migrate(conn: sqlite3.Connection):
    cur = conn.cursor()
    for stmt in DDL:
        cur.execute(stmt)
    cols = {row[1] for row in cur.execute("PRAGMA table_info(submissions)").fetchall()}
    if "submit_count" not in cols:
        cur.execute("ALTER TABLE submissions ADD COLUMN submit_count INTEGER NOT NULL DEFAULT 1")
    if "schema_version" not in cols:
        cur.execute("ALTER TABLE submissions ADD COLUMN schema_version INTEGER NOT NULL DEFAULT 0")
    day_cols = {row[1] for row in cur.execute("PRAGMA table_info(daily_breakdown)").fetchall()}
    if "timestamp_ms" not in day_cols:
        cur.execute("ALTER TABLE daily_breakdown ADD COLUMN timestamp_ms INTEGER")

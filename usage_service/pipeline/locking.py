import sqlite3
import time
from contextlib import contextmanager

import structlog

log = structlog.get_logger()

@contextmanager
def owner_transaction(conn: sqlite3.Connection, user_id: int):
    """Serialize read-modify-write cycles for one owner.

    BEGIN IMMEDIATE takes SQLite's write lock before the first read, so the
    profile and every daily row read inside the block stay locked until
    COMMIT. A competing writer waits up to the connection's busy timeout.
    Any exception rolls the whole unit back.
    """
    waited = time.monotonic()
    conn.execute("BEGIN IMMEDIATE")
    log.debug("owner_lock_acquired", user_id=user_id, wait_sec=round(time.monotonic() - waited, 3))
    try:
        yield conn
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        log.debug("owner_lock_rolled_back", user_id=user_id)
        raise
    try:
        conn.execute("COMMIT")
    except sqlite3.Error:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise

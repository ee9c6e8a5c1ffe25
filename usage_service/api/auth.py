import secrets
import sqlite3
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, Request

from ..db import Database
from ..utils import now_utc_iso, sha256_text


@dataclass(frozen=True)
class AuthenticatedUser:
    id: int
    username: str


def get_database(request: Request) -> Database:
    return request.app.state.database


def ensure_user(conn: sqlite3.Connection, username: str) -> int:
    row = conn.execute("SELECT id FROM users WHERE username=?", (username,)).fetchone()
    if row:
        return row[0]
    cur = conn.execute(
        "INSERT INTO users(username, created_at_utc) VALUES(?,?)",
        (username, now_utc_iso()),
    )
    return cur.lastrowid


def issue_token(conn: sqlite3.Connection, username: str, name: str | None = None) -> str:
    """Create the user if needed and return a new raw bearer token (only its hash is stored)."""
    user_id = ensure_user(conn, username)
    token = "tt_" + secrets.token_urlsafe(32)
    conn.execute(
        "INSERT INTO api_tokens(token_sha256, user_id, name, created_at_utc) VALUES(?,?,?,?)",
        (sha256_text(token), user_id, name, now_utc_iso()),
    )
    return token


def require_user(
    authorization: str | None = Header(default=None),
    database: Database = Depends(get_database),
) -> AuthenticatedUser:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(401, {"error": "Missing or malformed Authorization header"})
    conn = database.connect()
    try:
        row = conn.execute(
            """
            SELECT u.id, u.username FROM api_tokens t JOIN users u ON u.id = t.user_id
            WHERE t.token_sha256=?
            """,
            (sha256_text(token.strip()),),
        ).fetchone()
    finally:
        conn.close()
    if not row:
        raise HTTPException(401, {"error": "Invalid API token"})
    return AuthenticatedUser(id=row[0], username=row[1])

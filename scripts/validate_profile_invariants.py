#!/usr/bin/env python3
"""
Invariant checks for merged usage profiles.

Recomputes day totals from each stored client breakdown and profile totals
from all daily rows, then reports any stored aggregate that differs.

Usage:
    python scripts/validate_profile_invariants.py [--username NAME]
"""
from pathlib import Path
import argparse
import os
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
os.chdir(ROOT)

from usage_service.db import get_conn
from usage_service.config import settings
from usage_service.pipeline.invariants import check_profile_invariants


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--username", default=None)
    args = parser.parse_args()

    conn = get_conn(settings.db_path, settings.db_busy_timeout_seconds)
    query = "SELECT s.id, u.username FROM submissions s JOIN users u ON u.id = s.user_id"
    params = ()
    if args.username:
        query += " WHERE u.username=?"
        params = (args.username,)
    failures = 0
    checked = 0
    for submission_id, username in conn.execute(query, params).fetchall():
        checked += 1
        problems = check_profile_invariants(conn, submission_id)
        if problems:
            failures += 1
            print(f"[FAIL] {username} (submission {submission_id})")
            for problem in problems:
                print(f"  - {problem}")
    conn.close()
    print(f"checked {checked} profile(s), {failures} with problems")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())

"""Payload and database fixtures shared by the test modules."""
import os
import tempfile

from usage_service.api.auth import ensure_user
from usage_service.api.schemas import SubmissionPayload
from usage_service.db import Database


def client_item(client, model_id="claude-sonnet-4", input=0, output=0, cache_read=0, cache_write=0,
                reasoning=0, cost=0.0, messages=1, timestamp_ms=None):
    item = {
        "client": client,
        "modelId": model_id,
        "tokens": {
            "input": input,
            "output": output,
            "cacheRead": cache_read,
            "cacheWrite": cache_write,
            "reasoning": reasoning,
        },
        "cost": cost,
        "messages": messages,
    }
    if timestamp_ms is not None:
        item["timestampMs"] = timestamp_ms
    return item


def payload_dict(contributions, clients=None, start=None, end=None):
    dates = sorted(day["date"] for day in contributions)
    if clients is None:
        clients = sorted({item["client"] for day in contributions for item in day["clients"]})
    return {
        "meta": {
            "generatedAt": "2024-12-05T10:00:00Z",
            "version": "1.3.0",
            "dateRange": {
                "start": start or (dates[0] if dates else "2024-12-01"),
                "end": end or (dates[-1] if dates else "2024-12-01"),
            },
        },
        "summary": {"clients": clients},
        "contributions": contributions,
    }


def make_payload(contributions, clients=None, start=None, end=None) -> SubmissionPayload:
    return SubmissionPayload.model_validate(payload_dict(contributions, clients, start, end))


def day(date, *items):
    return {"date": date, "clients": list(items)}


class TempDatabase:
    def __init__(self):
        self._dir = tempfile.TemporaryDirectory()
        self.path = os.path.join(self._dir.name, "usage.db")
        self.database = Database(self.path, busy_timeout_seconds=10.0)
        self.database.initialize()

    def connect(self):
        return self.database.connect()

    def add_user(self, username="alice") -> int:
        conn = self.connect()
        try:
            return ensure_user(conn, username)
        finally:
            conn.close()

    def cleanup(self):
        self._dir.cleanup()

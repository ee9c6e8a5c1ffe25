import json
import unittest

from fastapi.testclient import TestClient

from usage_service.api.auth import issue_token
from usage_service.config import Settings
from usage_service.main import create_app

from support import TempDatabase, client_item, day, payload_dict


class SubmitApiTests(unittest.TestCase):
    def setUp(self):
        self.db = TempDatabase()
        conn = self.db.connect()
        try:
            self.token = issue_token(conn, "carol", "laptop")
        finally:
            conn.close()
        app = create_app(Settings(DB_PATH=self.db.path, MAX_SUBMISSION_DAYS=10))
        self.client = TestClient(app)
        self.client.__enter__()

    def tearDown(self):
        self.client.__exit__(None, None, None)
        self.db.cleanup()

    def post(self, body, token=None):
        headers = {"Authorization": f"Bearer {token or self.token}"}
        return self.client.post("/api/submit", json=body, headers=headers)

    def test_health(self):
        res = self.client.get("/health")
        self.assertEqual(res.status_code, 200)
        self.assertTrue(res.json()["ok"])

    def test_missing_token_is_rejected_before_validation(self):
        res = self.client.post("/api/submit", json={"not": "a payload"})
        self.assertEqual(res.status_code, 401)

    def test_unknown_token(self):
        body = payload_dict([day("2024-12-01", client_item("claude", input=1))])
        res = self.post(body, token="tt_nope")
        self.assertEqual(res.status_code, 401)

    def test_malformed_payload_is_422(self):
        res = self.post({"meta": {}, "contributions": [{"date": "2024-12-01", "clients": [{"client": "claude"}]}]})
        self.assertEqual(res.status_code, 422)

    def test_empty_contributions_is_400_with_details(self):
        res = self.post(payload_dict([], clients=["claude"]))
        self.assertEqual(res.status_code, 400)
        detail = res.json()["detail"]
        self.assertEqual(detail["error"], "Invalid submission data")
        self.assertIn("contributions must not be empty", detail["details"])
        self.assertEqual(self.client.get("/api/users/carol").status_code, 404)

    def test_unbounded_numbers_are_422_without_profile(self):
        for cost in (float("inf"), 1e30):
            with self.subTest(cost=cost):
                body = payload_dict([day("2024-12-01", client_item("claude", input=1, cost=cost))])
                res = self.client.post(
                    "/api/submit",
                    content=json.dumps(body),
                    headers={"Authorization": f"Bearer {self.token}", "Content-Type": "application/json"},
                )
                self.assertEqual(res.status_code, 422)
        res = self.post(payload_dict([day("2024-12-01", client_item("claude", input=2**64))]))
        self.assertEqual(res.status_code, 422)
        self.assertEqual(self.client.get("/api/users/carol").status_code, 404)

    def test_day_limit_from_settings(self):
        contributions = [day(f"2024-12-{d:02d}", client_item("claude", input=1)) for d in range(1, 12)]
        res = self.post(payload_dict(contributions))
        self.assertEqual(res.status_code, 400)

    def test_create_then_merge(self):
        first = self.post(payload_dict([
            day("2024-12-01", client_item("claude", input=1000, cost=1.5), client_item("cursor", "gpt-4o", input=500, cost=0.5)),
        ]))
        self.assertEqual(first.status_code, 200)
        body = first.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["mode"], "create")
        self.assertEqual(body["username"], "carol")
        self.assertEqual(body["metrics"]["totalTokens"], 1500)
        self.assertAlmostEqual(body["metrics"]["totalCost"], 2.0)
        self.assertEqual(body["metrics"]["dateRange"], {"start": "2024-12-01", "end": "2024-12-01"})
        self.assertEqual(body["metrics"]["sources"], ["claude", "cursor"])
        self.assertEqual(body["warnings"], [])

        second = self.post(payload_dict(
            [day("2024-12-02", client_item("pi", "pi-model", input=10))],
            clients=["claude"],
        ))
        self.assertEqual(second.status_code, 200)
        body = second.json()
        self.assertEqual(body["mode"], "merge")
        self.assertEqual(body["submissionId"], first.json()["submissionId"])
        self.assertEqual(body["metrics"]["activeDays"], 2)
        self.assertEqual(body["metrics"]["dateRange"], {"start": "2024-12-01", "end": "2024-12-02"})
        self.assertEqual(len(body["warnings"]), 1)

        profile = self.client.get("/api/users/carol").json()
        self.assertEqual(profile["submitCount"], 2)
        self.assertEqual([d["date"] for d in profile["daily"]], ["2024-12-01", "2024-12-02"])
        self.assertEqual(sorted(profile["daily"][0]["clients"]), ["claude", "cursor"])
        self.assertEqual(profile["daily"][1]["models"], {"pi-model": 10})

    def test_unexpected_failure_is_opaque_500(self):
        from unittest import mock
        from usage_service.api import routes

        with mock.patch.object(routes, "ingest_submission", side_effect=RuntimeError("secret detail")):
            res = self.post(payload_dict([day("2024-12-01", client_item("claude", input=1))]))
        self.assertEqual(res.status_code, 500)
        self.assertNotIn("secret", res.text)


class LeaderboardApiTests(unittest.TestCase):
    USAGE = {
        "alice": (1000, 1.0),
        "bob": (1000, 3.0),
        "carol": (500, 10.0),
        "erin": (1000, 1.0),
    }

    def setUp(self):
        self.db = TempDatabase()
        conn = self.db.connect()
        try:
            tokens = {name: issue_token(conn, name) for name in [*self.USAGE, "dave"]}
        finally:
            conn.close()
        app = create_app(Settings(DB_PATH=self.db.path))
        self.client = TestClient(app)
        self.client.__enter__()
        for name, (input_tokens, cost) in self.USAGE.items():
            res = self.client.post(
                "/api/submit",
                json=payload_dict([day("2024-12-01", client_item("claude", input=input_tokens, cost=cost))]),
                headers={"Authorization": f"Bearer {tokens[name]}"},
            )
            self.assertEqual(res.status_code, 200)

    def tearDown(self):
        self.client.__exit__(None, None, None)
        self.db.cleanup()

    def ranking(self, **params):
        res = self.client.get("/api/leaderboard", params=params)
        self.assertEqual(res.status_code, 200)
        return res.json()

    def test_sorted_by_tokens_with_cost_tie_break(self):
        body = self.ranking()
        order = [(u["rank"], u["username"]) for u in body["users"]]
        self.assertEqual(order, [(1, "bob"), (2, "alice"), (2, "erin"), (4, "carol")])
        self.assertEqual(body["users"][0]["totalTokens"], 1000)
        self.assertAlmostEqual(body["users"][0]["totalCost"], 3.0)
        self.assertEqual(body["users"][0]["submissionCount"], 1)
        self.assertEqual(body["pagination"]["totalUsers"], 4)
        self.assertEqual(body["sortBy"], "tokens")

    def test_sorted_by_cost(self):
        body = self.ranking(sortBy="cost")
        self.assertEqual([u["username"] for u in body["users"]], ["carol", "bob", "alice", "erin"])
        self.assertEqual([u["rank"] for u in body["users"]], [1, 2, 3, 3])

    def test_paging_and_limit_cap(self):
        body = self.ranking(page=2, limit=2)
        self.assertEqual([u["username"] for u in body["users"]], ["erin", "carol"])
        self.assertEqual(body["pagination"]["totalPages"], 2)
        self.assertFalse(body["pagination"]["hasNext"])
        self.assertTrue(body["pagination"]["hasPrev"])
        self.assertEqual(self.ranking(limit=500)["pagination"]["limit"], 100)
        self.assertEqual(self.ranking(page=0)["pagination"]["page"], 1)

    def test_invalid_sort_is_400(self):
        res = self.client.get("/api/leaderboard", params={"sortBy": "messages"})
        self.assertEqual(res.status_code, 400)

    def test_user_rank(self):
        res = self.client.get("/api/leaderboard/user/erin")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["rank"], 2)
        res = self.client.get("/api/leaderboard/user/erin", params={"sortBy": "cost"})
        self.assertEqual(res.json()["rank"], 3)

    def test_user_without_profile_is_404(self):
        for name in ("dave", "nobody"):
            with self.subTest(name=name):
                res = self.client.get(f"/api/leaderboard/user/{name}")
                self.assertEqual(res.status_code, 404)
                self.assertEqual(res.json()["detail"]["error"], "User not found or has no submissions")
        self.assertEqual(self.client.get("/api/leaderboard/user/bad_name").status_code, 400)


if __name__ == "__main__":
    unittest.main()

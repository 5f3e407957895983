"""Integration tests for report and brand routes."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from promptverse.core.auth import AuthUser, require_auth
from promptverse.db.base import new_id

pytestmark = pytest.mark.integration

BRAND_ID = "c" * 32

BRAND_DATA = {
    "brandName": "Acme",
    "websiteUrl": "https://acme.test",
    "brandId": BRAND_ID,
    "platforms": {"chatgpt": True, "perplexity": False, "googleAiOverviews": False},
}

REPORT_DATA = [
    {
        "prompt": "best anvils",
        "success": True,
        "response": [{"found": True, "details": {"websiteFound": True, "brandMentionFound": False}}],
    }
]


def override_auth(user: AuthUser):
    """Dependency override factory for require_auth."""

    async def _override():
        return user

    return _override


@pytest.fixture
def authed_client(api_client: TestClient, test_user: AuthUser, seed_user):
    seed_user(test_user.user_id, credits=100)
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(test_user)
    yield api_client
    app.dependency_overrides.clear()


def _save(client: TestClient, **overrides):
    body = {"brandData": BRAND_DATA, "reportData": REPORT_DATA, "promptsCount": 30}
    body.update(overrides)
    return client.post("/api/reports/save", json=body)


class TestSaveAndResume:
    def test_save_debits_credits(self, authed_client: TestClient):
        response = _save(authed_client)

        assert response.status_code == 201, response.text
        body = response.json()
        assert body["outcome"] == "not_found_created_new"
        assert body["report"]["status"] == "completed"
        assert body["report"]["stats"]["websiteFound"] == 1

        balance = authed_client.get("/api/credits/balance").json()
        assert balance["credits"] == 70
        assert balance["creditsUsed"] == 30

    def test_save_with_insufficient_credits(self, authed_client: TestClient):
        response = _save(authed_client, promptsCount=101)

        assert response.status_code == 400
        assert response.json()["detail"]["creditsNeeded"] == 101
        assert authed_client.get("/api/reports/list").json()["total"] == 0

    def test_progress_then_finalize(self, authed_client: TestClient):
        progress = authed_client.post(
            "/api/reports/save-progress",
            json={"brandData": BRAND_DATA, "currentStep": 2, "formData": {"keywords": ["anvil"]}},
        )
        assert progress.status_code == 200
        draft = progress.json()["report"]
        assert draft["status"] == "in-progress"
        assert draft["progress"]["currentStep"] == 2

        final = _save(authed_client, inProgressReportId=draft["id"], promptsCount=1)
        assert final.json()["outcome"] == "updated"
        assert final.json()["report"]["id"] == draft["id"]
        assert final.json()["report"]["progress"] is None

    def test_progress_unknown_report_rejected(self, authed_client: TestClient):
        response = authed_client.post(
            "/api/reports/save-progress",
            json={"reportId": new_id(), "brandData": BRAND_DATA, "currentStep": 2},
        )
        assert response.status_code == 404
        assert response.json()["outcome"] == "not_found_rejected"

    def test_progress_requires_step(self, authed_client: TestClient):
        response = authed_client.post("/api/reports/save-progress", json={"brandData": BRAND_DATA})
        assert response.status_code == 400


class TestReadAndShare:
    def test_list_omits_report_data(self, authed_client: TestClient):
        _save(authed_client, promptsCount=0)

        listing = authed_client.get("/api/reports/list", params={"page": 1, "limit": 10}).json()

        assert listing["total"] == 1
        assert listing["totalPages"] == 1
        assert "reportData" not in listing["reports"][0]

    def test_brand_views(self, authed_client: TestClient):
        saved = _save(authed_client, promptsCount=0).json()["report"]

        latest = authed_client.get(f"/api/reports/by-brand/{BRAND_ID}")
        assert latest.status_code == 200
        assert latest.json()["id"] == saved["id"]

        for path in (f"/api/reports/brand/{BRAND_ID}", f"/api/reports/brand/{BRAND_ID}/all"):
            body = authed_client.get(path).json()
            assert body["count"] == 1
            assert body["data"][0]["reportData"] == REPORT_DATA

        assert authed_client.get(f"/api/reports/by-brand/{new_id()}").status_code == 404

    def test_visibility_trend_needs_two_reports(self, authed_client: TestClient):
        _save(authed_client, promptsCount=0)

        single = authed_client.get(f"/api/reports/brand/{BRAND_ID}/visibility-trend").json()
        assert single["data"] == []
        assert single["message"] == "At least 2 reports are required to show trend"

        _save(authed_client, promptsCount=0)
        trend = authed_client.get(
            f"/api/reports/brand/{BRAND_ID}/visibility-trend",
            params={"startDate": "2000-01-01", "endDate": "2999-12-31"},
        ).json()
        assert trend["count"] == 2
        assert trend["data"][0]["websiteFound"] == 1
        assert trend["data"][0]["successRate"] == 100

    def test_share_is_public(self, authed_client: TestClient):
        saved = _save(authed_client, promptsCount=0).json()["report"]

        shared = authed_client.post(f"/api/reports/{saved['id']}/share")
        assert shared.status_code == 200
        token = shared.json()["shareToken"]
        assert shared.json()["shareUrl"].endswith(f"/shared/{token}")

        authed_client.app.dependency_overrides.clear()
        public = authed_client.get(f"/api/reports/shared/{token}")
        assert public.status_code == 200
        assert public.json()["id"] == saved["id"]

    def test_reports_are_isolated_between_users(self, authed_client: TestClient, seed_user):
        saved = _save(authed_client, promptsCount=0).json()["report"]

        intruder = AuthUser(user_id=new_id(), claims={})
        seed_user(intruder.user_id)
        authed_client.app.dependency_overrides[require_auth] = override_auth(intruder)

        assert authed_client.get(f"/api/reports/{saved['id']}").status_code == 404
        assert authed_client.delete(f"/api/reports/{saved['id']}").status_code == 404
        assert authed_client.get("/api/reports/list").json()["total"] == 0

    def test_schedule_from_report(self, authed_client: TestClient):
        saved = _save(authed_client, promptsCount=0).json()["report"]

        response = authed_client.post(
            "/api/analysis/schedule-from-report",
            json={"reportId": saved["id"], "scheduleFrequency": "weekly"},
        )

        assert response.status_code == 201, response.text
        schedule = response.json()
        assert schedule["brandName"] == "Acme"
        assert schedule["aiModels"] == ["chatgpt"]
        assert [p["text"] for p in schedule["prompts"]] == ["best anvils"]
        assert schedule["scheduleFrequency"] == "weekly"

        missing = authed_client.post("/api/analysis/schedule-from-report", json={"reportId": new_id()})
        assert missing.status_code == 404

    def test_delete(self, authed_client: TestClient):
        saved = _save(authed_client, promptsCount=0).json()["report"]

        assert authed_client.delete(f"/api/reports/{saved['id']}").status_code == 200
        assert authed_client.get(f"/api/reports/{saved['id']}").status_code == 404


class TestBrands:
    def test_save_list_get(self, authed_client: TestClient):
        created = authed_client.post("/api/brand/save", json={"brandName": "Acme", "websiteUrl": "https://acme.test"})
        assert created.status_code == 201
        brand = created.json()
        assert brand["brandName"] == "Acme"

        listing = authed_client.get("/api/brand/list").json()
        assert [b["id"] for b in listing["data"]] == [brand["id"]]
        assert authed_client.get(f"/api/brand/{brand['id']}").json()["websiteUrl"] == "https://acme.test"

    def test_duplicate_brand_400(self, authed_client: TestClient):
        authed_client.post("/api/brand/save", json={"brandName": "Acme", "websiteUrl": "https://acme.test"})
        response = authed_client.post("/api/brand/save", json={"brandName": "Acme", "websiteUrl": "https://acme.test"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Brand already exists"

    def test_delete_cascades_reports_and_schedules(self, authed_client: TestClient):
        brand = authed_client.post(
            "/api/brand/save", json={"brandName": "Acme", "websiteUrl": "https://acme.test"}
        ).json()
        _save(authed_client, promptsCount=0, brandData={**BRAND_DATA, "brandId": brand["id"]})
        authed_client.post(
            "/api/analysis/store-prompts",
            json={
                "brandId": brand["id"],
                "brandName": "Acme",
                "brandUrl": "https://acme.test",
                "prompts": ["best anvils"],
                "aiModels": ["chatgpt"],
            },
        )

        response = authed_client.delete(f"/api/brand/{brand['id']}")

        assert response.status_code == 200
        assert response.json() == {
            "message": "Brand and all associated data deleted successfully",
            "deletedData": {"reports": 1, "schedules": 1},
        }
        assert authed_client.get("/api/reports/list").json()["total"] == 0
        assert authed_client.get("/api/analysis/scheduled-prompts").json()["count"] == 0
        assert authed_client.get(f"/api/brand/{brand['id']}").status_code == 404

"""Integration tests for the credits API: balance, history, and deduction."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from promptverse.core.auth import AuthUser, require_auth

pytestmark = pytest.mark.integration


def override_auth(user: AuthUser):
    """Dependency override factory for require_auth."""

    async def _override():
        return user

    return _override


@pytest.fixture
def authed_client(api_client: TestClient, test_user: AuthUser):
    app: FastAPI = api_client.app
    app.dependency_overrides[require_auth] = override_auth(test_user)
    yield api_client
    app.dependency_overrides.clear()


class TestBalance:
    def test_balance_reports_plan_policy(self, authed_client: TestClient, test_user, seed_user):
        seed_user(
            test_user.user_id,
            credits=120,
            credits_used=30,
            current_plan="starter",
            allowed_models=["chatgpt", "perplexity", "google_ai_overview"],
        )

        response = authed_client.get("/api/credits/balance")

        assert response.status_code == 200
        assert response.json() == {
            "credits": 120,
            "creditsUsed": 30,
            "currentPlan": "starter",
            "allowedModels": ["chatgpt", "perplexity", "google_ai_overview"],
        }

    def test_unknown_user_404(self, authed_client: TestClient):
        response = authed_client.get("/api/credits/balance")
        assert response.status_code == 404


class TestDeduct:
    def test_deduct_then_history(self, authed_client: TestClient, test_user, seed_user):
        seed_user(test_user.user_id, credits=50)

        response = authed_client.post("/api/credits/deduct", json={"amount": 20, "description": "Manual analysis"})

        assert response.status_code == 200
        assert response.json() == {"credits": 30, "deducted": 20}

        history = authed_client.get("/api/credits/history").json()["entries"]
        assert len(history) == 1
        assert history[0]["amount"] == -20
        assert history[0]["type"] == "spent"
        assert history[0]["source"] == "manual"
        assert history[0]["description"] == "Manual analysis"
        assert history[0]["balanceAfter"] == 30

    def test_insufficient_credits_400_with_amounts(self, authed_client: TestClient, test_user, seed_user):
        seed_user(test_user.user_id, credits=5)

        response = authed_client.post("/api/credits/deduct", json={"amount": 30})

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["creditsNeeded"] == 30
        assert detail["creditsAvailable"] == 5
        assert authed_client.get("/api/credits/balance").json()["credits"] == 5

    @pytest.mark.parametrize("amount", [0, -3])
    def test_non_positive_amount_rejected(self, authed_client: TestClient, test_user, seed_user, amount):
        seed_user(test_user.user_id, credits=5)
        response = authed_client.post("/api/credits/deduct", json={"amount": amount})
        assert response.status_code == 422


class TestEarnedCredits:
    def test_survey_rewards_once(self, authed_client: TestClient, test_user, seed_user):
        seed_user(test_user.user_id, credits=5)

        assert authed_client.get("/api/credits/survey/status").json()["completed"] is False

        response = authed_client.post("/api/credits/survey", json={"responses": {"question1": "Agency"}})
        assert response.status_code == 200
        assert response.json()["creditsAwarded"] == 50
        assert response.json()["credits"] == 55

        status = authed_client.get("/api/credits/survey/status").json()
        assert status["completed"] is True
        assert status["completedAt"] is not None

        again = authed_client.post("/api/credits/survey", json={"responses": {"question1": "Agency"}})
        assert again.status_code == 400
        assert again.json()["detail"] == "Survey already completed"
        assert authed_client.get("/api/credits/balance").json()["credits"] == 55

    def test_survey_requires_responses(self, authed_client: TestClient, test_user, seed_user):
        seed_user(test_user.user_id)
        response = authed_client.post("/api/credits/survey", json={})
        assert response.status_code == 400

    def test_referrals_assigns_code_and_link(self, authed_client: TestClient, test_user, seed_user):
        seed_user(test_user.user_id)

        body = authed_client.get("/api/credits/referrals").json()

        assert len(body["referralCode"]) == 8
        assert body["referralCount"] == 0
        assert body["shareableLink"].endswith(f"/register?ref={body['referralCode']}")
        assert body["rewardPerReferral"] == 10
        assert body["creditsEarned"] == 0
        assert authed_client.get("/api/credits/referrals").json()["referralCode"] == body["referralCode"]

    def test_activity_lists_entries_with_totals(self, authed_client: TestClient, test_user, seed_user):
        seed_user(test_user.user_id, credits=40)
        authed_client.post("/api/credits/survey", json={"responses": {"question1": "Agency"}})
        authed_client.post("/api/credits/deduct", json={"amount": 15})

        body = authed_client.get("/api/credits/activity").json()

        assert [e["type"] for e in body["entries"]] == ["spent", "earned"]
        assert body["totals"] == {"earned": 50, "spent": -15}

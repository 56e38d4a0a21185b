import json

import pytest
import requests
from fastapi.testclient import TestClient

import fastapi_backend
from conftest import FakeHTTPResponse


@pytest.fixture
def client(monkeypatch, fake_db):
    monkeypatch.setattr(fastapi_backend, "db", fake_db)
    return TestClient(fastapi_backend.app)


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_analyze_returns_model_verdict(client, llm, complete_profile, nutrition):
    answer = {"prediction": "Safe", "reasoning": "Moderate carbs", "healthTip": ["a", "b", "c", "d", "e"]}
    llm(FakeHTTPResponse(200, {"response": "```json\n" + json.dumps(answer) + "\n```"}))

    response = client.post("/analyze-food", json={
        "nutrition": {**nutrition, "condition": "diabetes", "foodName": "Oats"},
        "profile": complete_profile,
    })

    assert response.status_code == 200
    body = response.json()
    assert body["prediction"] == "Safe"
    assert body["reasoning"] == "Moderate carbs"
    assert [t["content"] for t in body["healthTip"]] == ["a", "b", "c", "d", "e"]


def test_analyze_refuses_incomplete_profile(client, llm, hypertension_profile_without_bp, nutrition):
    fake = llm(FakeHTTPResponse(200, {"response": "{}"}))

    response = client.post("/analyze-food", json={
        "nutrition": {**nutrition, "condition": "hypertension"},
        "profile": hypertension_profile_without_bp,
    })

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["error"] == "profile_incomplete"
    assert detail["missing"] == ["hypertensionStatus"]
    assert fake.calls == []


def test_analyze_rejects_bad_nutrition(client, complete_profile, nutrition):
    nutrition["calories"] = -1
    response = client.post("/analyze-food", json={
        "nutrition": {**nutrition, "condition": "diabetes"},
        "profile": complete_profile,
    })
    assert response.status_code == 422


def test_analyze_survives_model_timeout(client, llm, complete_profile, nutrition):
    llm(error=requests.exceptions.Timeout("slow"))
    response = client.post("/analyze-food", json={
        "nutrition": {**nutrition, "sodium": 500, "condition": "diabetes"},
        "profile": complete_profile,
    })
    assert response.status_code == 200
    assert response.json()["prediction"] == "Risky"
    assert len(response.json()["healthTip"]) == 5


def test_generate_tips(client, llm, fake_db):
    fake_db.tables["users"] = [{"id": "user-1"}]
    tips = [{"content": f"t{i}"} for i in range(5)]
    llm(FakeHTTPResponse(200, {"response": json.dumps(tips)}))

    response = client.post("/generate-tips", json={"user_id": "user-1"})

    assert response.status_code == 200
    assert response.json()["tips"] == tips
    assert fake_db.rows("users")[0]["tips"] == tips


def test_generate_tips_unavailable(client, llm):
    llm(error=requests.exceptions.ConnectionError("down"))
    assert client.post("/generate-tips", json={"user_id": "user-1"}).status_code == 503

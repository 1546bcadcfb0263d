"""
HTTP-level tests for POST /api/gemini and friends.
"""
import json

from jose import jwt

from app.errors import QuotaExceededError, UpstreamError
from app.services.model_client import TierRole

from conftest import FOOD_JSON, PHOTO_B64, FakeModelClient

URL = "/api/gemini"


def test_chat_as_fresh_client(client_for):
    client = client_for(FakeModelClient(default="Olá! Como posso ajudar? 🥗"))

    response = client.post(URL, json={"action": "chat", "payload": {"message": "Hi"}})

    assert response.status_code == 200
    assert response.json() == {"result": "Olá! Como posso ajudar? 🥗"}
    assert response.headers["X-RateLimit-Remaining"] == "59"


def test_twenty_first_analysis_is_rate_limited(client_for):
    client = client_for(FakeModelClient(responses={TierRole.VISION: FOOD_JSON}))
    body = {"action": "analyze-food", "payload": {"base64Data": PHOTO_B64}}

    statuses = [client.post(URL, json=body).status_code for _ in range(20)]
    response = client.post(URL, json=body)

    assert statuses == [200] * 20
    assert response.status_code == 429
    assert "limite de requisições" in response.json()["error"]
    assert response.headers["X-RateLimit-Remaining"] == "0"
    assert int(response.headers["Retry-After"]) > 0


def test_same_photo_twice_calls_model_once(client_for):
    model = FakeModelClient(responses={TierRole.VISION: FOOD_JSON})
    client = client_for(model)
    body = {"action": "analyze-food", "payload": {"base64Data": PHOTO_B64, "mimeType": "image/jpeg"}}

    first = client.post(URL, json=body)
    second = client.post(URL, json=body)

    assert first.status_code == second.status_code == 200
    assert json.loads(first.json()["result"]) == json.loads(second.json()["result"])
    assert len(model.calls) == 1


def test_vision_quota_exhaustion_is_invisible_to_caller(client_for):
    model = FakeModelClient(responses={
        TierRole.VISION: QuotaExceededError("gemini-2.5-flash", "429 RESOURCE_EXHAUSTED"),
        TierRole.VISION_FALLBACK: FOOD_JSON,
    })
    client = client_for(model)

    response = client.post(URL, json={"action": "analyze-food", "payload": {"base64Data": PHOTO_B64}})

    assert response.status_code == 200
    assert json.loads(response.json()["result"])["name"] == "Arroz com feijão"
    assert len(model.calls) == 2


def test_unknown_action_is_400(client_for):
    model = FakeModelClient()
    client = client_for(model)

    response = client.post(URL, json={"action": "hack", "payload": {}})

    assert response.status_code == 400
    assert response.json() == {"error": "Ação inválida"}
    assert "X-RateLimit-Remaining" not in response.headers
    assert model.calls == []


def test_missing_action_is_400(client_for):
    client = client_for(FakeModelClient())

    response = client.post(URL, json={"payload": {}})

    assert response.status_code == 400
    assert "error" in response.json()


def test_malformed_payload_is_400(client_for):
    client = client_for(FakeModelClient())

    response = client.post(URL, json={"action": "generate-shopping-list", "payload": {"ingredients": []}})

    assert response.status_code == 400
    assert response.json() == {"error": "Dados inválidos para a ação solicitada."}


def test_upstream_failure_hides_vendor_text(client_for):
    model = FakeModelClient(responses={TierRole.LITE: UpstreamError("lite", "500 INTERNAL key=abc123")})
    client = client_for(model)

    response = client.post(URL, json={"action": "chat", "payload": {"message": "Oi"}})

    assert response.status_code == 502
    assert "abc123" not in response.text
    assert "INTERNAL" not in response.text
    assert response.headers["X-RateLimit-Remaining"] == "59"


def test_missing_api_key_answers_configuration_error(client_for):
    client = client_for(None)

    response = client.post(URL, json={"action": "chat", "payload": {"message": "Oi"}})

    assert response.status_code == 500
    assert "GEMINI_API_KEY" in response.json()["error"]


def test_get_is_method_not_allowed(client_for):
    client = client_for(FakeModelClient())

    response = client.get(URL)

    assert response.status_code == 405
    assert "error" in response.json()


def test_cors_preflight(client_for):
    client = client_for(FakeModelClient())

    response = client.options(URL, headers={
        "Origin": "https://nutrismart.app",
        "Access-Control-Request-Method": "POST",
        "Access-Control-Request-Headers": "Content-Type",
    })

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] in ("*", "https://nutrismart.app")
    assert "POST" in response.headers["access-control-allow-methods"]


def test_oversized_body_is_413(client_for, settings):
    settings.max_request_bytes = 100
    client = client_for(FakeModelClient())

    response = client.post(URL, json={"action": "chat", "payload": {"message": "x" * 500}})

    assert response.status_code == 413


def test_health_reports_configuration(client_for):
    client = client_for(FakeModelClient())

    response = client.get(f"{URL}/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "gemini_configured": True,
        "cache_store": "sql",
        "rate_limit_store": "memory",
    }


def test_authenticated_and_anonymous_quotas_are_separate(client_for, settings):
    client = client_for(FakeModelClient(), limits={"chat": 1})
    token = jwt.encode({"sub": "user-42"}, settings.jwt_secret_key, algorithm="HS256")
    body = {"action": "chat", "payload": {"message": "Oi"}}

    anonymous = client.post(URL, json=body)
    authenticated = client.post(URL, json=body, headers={"Authorization": f"Bearer {token}"})
    anonymous_again = client.post(URL, json=body)

    assert anonymous.status_code == 200
    assert authenticated.status_code == 200
    assert anonymous_again.status_code == 429


def test_forwarded_clients_are_limited_separately(client_for):
    client = client_for(FakeModelClient(), limits={"chat": 1})
    body = {"action": "chat", "payload": {"message": "Oi"}}

    first = client.post(URL, json=body, headers={"X-Forwarded-For": "198.51.100.1, 10.0.0.1"})
    other = client.post(URL, json=body, headers={"X-Forwarded-For": "198.51.100.2"})
    first_again = client.post(URL, json=body, headers={"X-Forwarded-For": "198.51.100.1"})

    assert first.status_code == 200
    assert other.status_code == 200
    assert first_again.status_code == 429


def test_chat_with_zero_water_goal(client_for):
    model = FakeModelClient(default="Beba água ao longo do dia.")
    client = client_for(model)
    payload = {
        "message": "Oi",
        "context": {
            "user": {"name": "Ana", "dailyCalorieGoal": 2000, "dailyWaterGoal": 0},
            "stats": {"caloriesConsumed": 500, "waterConsumed": 250, "caloriesBurned": 0},
            "recentMeals": [],
        },
    }

    response = client.post(URL, json={"action": "chat", "payload": payload})

    assert response.status_code == 200
    assert response.json() == {"result": "Beba água ao longo do dia."}
    assert "(0%)" in model.calls[0][1].system_instruction


def test_meal_plan_with_six_meals_per_day(client_for):
    model = FakeModelClient(default='{"meals": []}')
    client = client_for(model)
    payload = {
        "user": {"dailyCalorieGoal": 2200, "macros": {"protein": 130}},
        "preferences": {"mealsPerDay": 6},
        "dayName": "Quarta-feira",
    }

    response = client.post(URL, json={"action": "generate-meal-plan", "payload": payload})

    assert response.status_code == 200
    assert "Crie 6 refeições: Café da Manhã, Lanche da Manhã" in model.calls[0][1].content[0]


def test_chunked_oversized_body_is_413(client_for, settings):
    settings.max_request_bytes = 100
    model = FakeModelClient()
    client = client_for(model)
    body = json.dumps({"action": "chat", "payload": {"message": "x" * 500}}).encode()

    response = client.post(
        URL,
        content=iter([body[:50], body[50:]]),
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 413
    assert model.calls == []

"""API tests for /nutrition and /usage endpoints."""

from conftest import auth_headers, nutrition_payload, put_image


class TestEstimateNutrition:
    """Tests for POST /nutrition/estimate."""

    async def test_returns_estimate(self, client, image_store, model_provider):
        key = await put_image(image_store, "user-1", "lunch")
        model_provider.queue("nutrition_estimate", nutrition_payload())

        response = await client.post("/nutrition/estimate", json={"key": key}, headers=auth_headers())

        assert response.status_code == 200
        assert response.json() == nutrition_payload()

        sent = model_provider.calls_for("nutrition_estimate")[0]
        assert "small or medium portion" in sent["instructions"]
        assert sent["text"]["format"]["schema"]["additionalProperties"] is False

    async def test_eleventh_call_hits_daily_limit(self, client, image_store, model_provider, clock):
        """Test the 11th estimate of the day is rejected with 429."""
        key = await put_image(image_store, "user-1", "lunch")
        model_provider.queue("nutrition_estimate", nutrition_payload())

        for _ in range(10):
            response = await client.post("/nutrition/estimate", json={"key": key}, headers=auth_headers())
            assert response.status_code == 200
            # Stay clear of the burst window
            clock.advance(61)

        response = await client.post("/nutrition/estimate", json={"key": key}, headers=auth_headers())

        assert response.status_code == 429
        assert response.json()["error"] == "Daily limit reached (10 nutrition/day)"
        assert len(model_provider.calls_for("nutrition_estimate")) == 10

    async def test_extra_fields_rejected(self, client, model_provider):
        response = await client.post(
            "/nutrition/estimate",
            json={"key": "uploads/user-1/lunch.jpg", "portion": "large"},
            headers=auth_headers(),
        )

        assert response.status_code == 400
        assert model_provider.requests == []

    async def test_missing_key_rejected(self, client):
        response = await client.post("/nutrition/estimate", json={}, headers=auth_headers())

        assert response.status_code == 400
        assert "key" in response.json()["error"]


class TestUsage:
    """Tests for GET /usage."""

    async def test_reports_admitted_requests(self, client, image_store, model_provider):
        key = await put_image(image_store, "user-1", "lunch")
        model_provider.queue("nutrition_estimate", nutrition_payload())
        await client.post("/nutrition/estimate", json={"key": key}, headers=auth_headers())

        response = await client.get("/usage", headers=auth_headers())

        assert response.status_code == 200
        usage = {u["kind"]: u for u in response.json()["usage"]}
        assert usage["nutrition"] == {"kind": "nutrition", "used": 1, "limit": 10, "remaining": 9}
        assert usage["verify"]["used"] == 0

    async def test_requires_auth(self, client):
        response = await client.get("/usage")

        assert response.status_code == 401

"""
Integration tests for the Gold Platform API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
from fastapi.testclient import TestClient

from gold_platform.api import app
from gold_platform.api.deps import GoldPlatform, get_platform
from gold_platform.config import GoldPlatformConfig


OPERATOR_HEADERS = {"X-User-Id": "ops-1", "X-User-Role": "operator"}
AUDITOR_HEADERS = {"X-User-Id": "audit-1", "X-User-Role": "auditor"}
USER_HEADERS = {"X-User-Id": "user-1", "X-User-Role": "user"}


def user_headers(user_id):
    return {"X-User-Id": user_id, "X-User-Role": "user"}

CASE_BODY = {
    "personal_info": {
        "full_name": "Amal Hassan",
        "date_of_birth": "1990-05-17",
        "nationality": "EG",
        "address_line1": "12 Nile Street",
        "city": "Cairo",
        "country": "EG",
        "postal_code": "11511"
    },
    "identity_document": {
        "id_type": "national_id",
        "id_number": "29005171234567",
        "issuing_country": "EG"
    }
}

DOCUMENT_BODY = {
    "document_type": "national_id",
    "file_url": "https://files.example.com/id.jpg",
    "file_name": "id.jpg",
    "file_size": 250000,
    "mime_type": "image/jpeg"
}


@pytest.fixture
def client():
    """Create a test client backed by an in-memory platform"""
    cfg = GoldPlatformConfig(storage_backend="memory", spot_price_usd_per_ounce="3110.34768")
    platform = GoldPlatform(cfg)
    app.dependency_overrides[get_platform] = lambda: platform
    yield TestClient(app)
    app.dependency_overrides.clear()
    platform.close()


class TestHealthEndpoints:

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        assert "kyc" in r.json()["endpoints"]


class TestPricingEndpoints:

    def test_rates(self, client):
        r = client.get("/rates")
        assert r.status_code == 200
        assert r.json()["rates"]["EGP"] == "48.5"

    def test_convert(self, client):
        r = client.get("/rates/convert", params={
            "amount": "1234.56", "from_currency": "USD", "to_currency": "EUR", "locale": "de-DE"
        })
        assert r.status_code == 200
        data = r.json()
        assert data["amount"] == "1135.80"
        assert data["formatted"] == "1.135,80 €"

    @pytest.mark.parametrize("amount", ["Infinity", "NaN", "-Infinity"])
    def test_convert_non_finite_amount(self, client, amount):
        r = client.get("/rates/convert", params={
            "amount": amount, "from_currency": "USD", "to_currency": "EUR"
        })
        assert r.status_code == 400
        assert r.json()["error"] == "invalid_amount"

    def test_invalid_currency(self, client):
        r = client.get("/gold/price", params={"currency": "JPY"})
        assert r.status_code == 400
        assert r.json()["error"] == "invalid_currency"

    def test_gold_price(self, client):
        r = client.get("/gold/price", params={"currency": "EUR"})
        assert r.status_code == 200
        assert r.json()["price_per_gram"] == "92.00"

    def test_buy_quote(self, client):
        r = client.post("/gold/quote/buy", json={"grams": "10", "currency": "USD"})
        assert r.status_code == 200
        data = r.json()
        assert data["subtotal"] == "1000.00"
        assert data["fee"] == "20.00"
        assert data["total"] == "1020.00"

    def test_sell_quote(self, client):
        r = client.post("/gold/quote/sell", json={"grams": "10"})
        assert r.status_code == 200
        assert r.json()["total"] == "985.00"

    def test_quote_invalid_grams(self, client):
        r = client.post("/gold/quote/buy", json={"grams": "0", "currency": "USD"})
        assert r.status_code == 400
        assert r.json()["error"] == "invalid_amount"

    def test_delivery_quote(self, client):
        r = client.post("/gold/quote/delivery", json={"grams": "150", "delivery_type": "standard"})
        assert r.status_code == 200
        assert r.json()["cost"] == "35.00"
        assert r.json()["estimated_days"] == 7

    def test_unknown_delivery_type(self, client):
        r = client.post("/gold/quote/delivery", json={"grams": "10", "delivery_type": "drone"})
        assert r.status_code == 400
        assert r.json()["error"] == "invalid_delivery_type"

    def test_fees(self, client):
        r = client.get("/fees/deposit", params={"amount": "1000", "method": "credit_card"})
        assert r.json()["fee"] == "29.00"
        r = client.get("/fees/withdrawal", params={"amount": "1000", "method": "credit_card"})
        assert r.status_code == 400
        assert r.json()["error"] == "invalid_input"

    def test_validation_error_is_bad_request(self, client):
        r = client.post("/gold/quote/buy", json={})
        assert r.status_code == 400


class TestKYCFlow:

    def _open_and_submit(self, client, user_id="user-1"):
        headers = user_headers(user_id)
        assert client.post(f"/kyc/{user_id}", json=CASE_BODY, headers=headers).status_code == 201
        assert client.put(f"/kyc/{user_id}/documents", json=DOCUMENT_BODY, headers=headers).status_code == 200
        r = client.post(f"/kyc/{user_id}/submit", headers=headers)
        assert r.status_code == 200
        return r.json()

    def test_full_approval_flow(self, client):
        submitted = self._open_and_submit(client)
        assert submitted["status"] == "submitted"

        pending = client.get("/kyc/admin/pending", headers=AUDITOR_HEADERS).json()
        assert pending["count"] == 1

        r = client.post("/kyc/user-1/approve", json={"notes": "ok", "expected_version": submitted["version"]},
                        headers=OPERATOR_HEADERS)
        assert r.status_code == 200
        assert r.json()["status"] == "verified"

        case = client.get("/kyc/user-1", headers=USER_HEADERS).json()
        assert case["status"] == "verified"
        assert case["is_expired"] is False
        assert len(case["status_history"]) == 3

    def test_duplicate_case(self, client):
        client.post("/kyc/user-1", json=CASE_BODY, headers=USER_HEADERS)
        r = client.post("/kyc/user-1", json=CASE_BODY, headers=USER_HEADERS)
        assert r.status_code == 409
        assert r.json()["error"] == "case_already_exists"

    def test_missing_case(self, client):
        r = client.get("/kyc/ghost", headers=AUDITOR_HEADERS)
        assert r.status_code == 404
        assert r.json()["error"] == "not_found"

    def test_user_cannot_approve(self, client):
        self._open_and_submit(client)
        r = client.post("/kyc/user-1/approve", json={}, headers=USER_HEADERS)
        assert r.status_code == 403
        assert r.json()["error"] == "unauthorized"

    def test_missing_identity_headers(self, client):
        self._open_and_submit(client)
        r = client.post("/kyc/user-1/reject", json={"reason": "Blurry"})
        assert r.status_code == 403

    def test_stale_version_conflict(self, client):
        submitted = self._open_and_submit(client)
        client.post("/kyc/user-1/reject", json={"reason": "Blurry"}, headers=OPERATOR_HEADERS)
        r = client.post("/kyc/user-1/approve", json={"expected_version": submitted["version"]},
                        headers=OPERATOR_HEADERS)
        assert r.status_code == 409
        assert r.json()["error"] == "concurrency_conflict"

    def test_approve_twice_conflict(self, client):
        self._open_and_submit(client)
        client.post("/kyc/user-1/approve", json={}, headers=OPERATOR_HEADERS)
        r = client.post("/kyc/user-1/approve", json={}, headers=OPERATOR_HEADERS)
        assert r.status_code == 409
        assert r.json()["error"] == "invalid_transition"

    def test_invalid_document(self, client):
        client.post("/kyc/user-1", json=CASE_BODY, headers=USER_HEADERS)
        r = client.put("/kyc/user-1/documents", json=dict(DOCUMENT_BODY, mime_type="text/plain"),
                       headers=USER_HEADERS)
        assert r.status_code == 400
        assert r.json()["error"] == "invalid_document"

    def test_review_and_remove_document(self, client):
        self._open_and_submit(client)
        r = client.post("/kyc/user-1/documents/national_id/review",
                        json={"approved": False, "reason": "Glare"}, headers=OPERATOR_HEADERS)
        assert r.status_code == 200
        assert r.json()["status"] == "rejected"

        r = client.delete("/kyc/user-1/documents/national_id", headers=USER_HEADERS)
        assert r.json()["removed"] is True

    def test_statistics(self, client):
        self._open_and_submit(client, "user-1")
        self._open_and_submit(client, "user-2")
        client.post("/kyc/user-1/approve", json={}, headers=OPERATOR_HEADERS)

        r = client.get("/kyc/admin/stats", headers=AUDITOR_HEADERS)
        assert r.status_code == 200
        data = r.json()
        assert data["total"] == 2
        assert data["verified"] == 1
        assert data["pending"] == 1

    def test_bulk_approve(self, client):
        self._open_and_submit(client, "user-1")
        self._open_and_submit(client, "user-2")
        r = client.post("/kyc/admin/bulk-approve", json={"user_ids": ["user-1", "user-2"]},
                        headers=OPERATOR_HEADERS)
        assert r.json()["approved"] == 2


class TestCaseAccess:

    def setup_method(self):
        self.victim = user_headers("victim")
        self.mallory = user_headers("mallory")

    def _open(self, client):
        assert client.post("/kyc/victim", json=CASE_BODY, headers=self.victim).status_code == 201

    def test_anonymous_cannot_read_case(self, client):
        self._open(client)
        r = client.get("/kyc/victim")
        assert r.status_code == 403
        assert "full_name" not in r.text

    def test_anonymous_cannot_open_case(self, client):
        r = client.post("/kyc/victim", json=CASE_BODY)
        assert r.status_code == 403

    def test_other_user_cannot_read_case(self, client):
        self._open(client)
        r = client.get("/kyc/victim", headers=self.mallory)
        assert r.status_code == 403
        assert r.json()["error"] == "unauthorized"

    def test_other_user_cannot_modify_case(self, client):
        self._open(client)
        assert client.put("/kyc/victim/documents", json=DOCUMENT_BODY,
                          headers=self.mallory).status_code == 403
        assert client.delete("/kyc/victim/documents/national_id",
                             headers=self.mallory).status_code == 403
        assert client.post("/kyc/victim/submit", headers=self.mallory).status_code == 403

        case = client.get("/kyc/victim", headers=self.victim).json()
        assert case["status"] == "pending"
        assert case["documents"] == []

    def test_other_user_cannot_open_case_for_someone_else(self, client):
        r = client.post("/kyc/someone-else", json=CASE_BODY, headers=self.mallory)
        assert r.status_code == 403
        assert client.get("/kyc/someone-else", headers=AUDITOR_HEADERS).status_code == 404

    def test_staff_can_read_case(self, client):
        self._open(client)
        r = client.get("/kyc/victim", headers=AUDITOR_HEADERS)
        assert r.status_code == 200
        assert r.json()["personal_info"]["full_name"] == "Amal Hassan"


class TestRouteHandlers:

    def test_pricing_routes_run_in_threadpool(self):
        import inspect
        from gold_platform.api import pricing

        for route in pricing.router.routes:
            assert not inspect.iscoroutinefunction(route.endpoint), route.path


class TestPlatformContainer:

    def test_feed_urls_select_http_providers(self):
        from gold_platform.rates import CachedExchangeRateProvider, HttpExchangeRateProvider
        from gold_platform.pricing import HttpSpotPriceProvider

        cfg = GoldPlatformConfig(
            storage_backend="memory",
            exchange_rate_url="https://rates.example.com",
            rate_cache_ttl_seconds=60,
            spot_price_url="https://market.example.com"
        )
        platform = GoldPlatform(cfg)
        assert isinstance(platform.rate_provider, CachedExchangeRateProvider)
        assert isinstance(platform.rate_provider.upstream, HttpExchangeRateProvider)
        assert platform.rate_provider.ttl.total_seconds() == 60
        assert isinstance(platform.spot_provider, HttpSpotPriceProvider)
        platform.close()

    def test_audit_can_be_disabled(self):
        platform = GoldPlatform(GoldPlatformConfig(storage_backend="memory", enable_audit_logging=False))
        assert platform.audit_trail is None
        assert platform.kyc_service.audit_trail is None
        platform.close()

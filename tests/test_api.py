"""End-to-end tests through the HTTP API."""
import uuid
from datetime import datetime, timedelta, timezone

from tests.factories import COMPANY_ID, OTHER_COMPANY_ID, SELLER_ID


USER_ID = "44444444-4444-4444-4444-444444444444"
START = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()


def rate_card_payload(**overrides):
    payload = {
        "company_id": str(COMPANY_ID),
        "name": "Surface Standard",
        "base_rates": [{
            "carrier": "Delhivery", "service_type": "surface",
            "base_price": "50", "min_weight": "0", "max_weight": "5",
        }],
        "weight_rules": [{"min_weight": "1", "max_weight": "2", "price_per_kg": "10"}],
        "zone_multipliers": {"zone_a": "1.0", "zone_c": "1.2"},
        "minimum_fare": "40",
        "effective_start": START,
    }
    payload.update(overrides)
    return payload


def courier_payload(**overrides):
    payload = {
        "provider": "Delhivery",
        "service_code": "DEL-SURFACE",
        "service_type": "surface",
        "display_name": "Delhivery Surface",
        "zone_support": ["all"],
        "sla": {"edd_min_days": 2, "edd_max_days": 4},
    }
    payload.update(overrides)
    return payload


async def create_active_card(client, **overrides):
    response = await client.post("/api/v1/rate-cards", json=rate_card_payload(**overrides))
    assert response.status_code == 201
    card = response.json()
    response = await client.post(f"/api/v1/rate-cards/{card['id']}/activate")
    assert response.status_code == 200
    return response.json()


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestRateCardEndpoints:
    async def test_create_normalises_zone_keys(self, client):
        response = await client.post(
            "/api/v1/rate-cards", json=rate_card_payload(), headers={"X-User-Id": USER_ID},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "draft"
        assert data["version"] == 1
        assert set(data["zone_multipliers"]) == {"zoneA", "zoneC"}

        history = (await client.get(f"/api/v1/rate-cards/{data['id']}/history")).json()
        assert history["total"] == 1
        assert history["items"][0]["action"] == "CREATE"
        assert history["items"][0]["user_id"] == USER_ID

    async def test_overlapping_slabs_return_422_with_the_pair(self, client):
        response = await client.post("/api/v1/rate-cards", json=rate_card_payload(weight_rules=[
            {"min_weight": "0", "max_weight": "1", "price_per_kg": "10"},
            {"min_weight": "0.5", "max_weight": "2", "price_per_kg": "8"},
        ]))

        assert response.status_code == 422
        body = response.json()
        assert body["type"] == "OverlappingSlabError"
        assert body["details"]["slabs"] == [{"min": "0", "max": "1"}, {"min": "0.5", "max": "2"}]

    async def test_validate_reports_ambiguous_schemes(self, client):
        response = await client.post("/api/v1/rate-cards/validate", json=rate_card_payload(
            zone_rules=[{"zone": "A", "additional_price": "10"}],
        ))

        assert response.status_code == 200
        result = response.json()
        assert result["valid"] is False
        assert result["errors"][0]["type"] == "AmbiguousPricingSchemeError"

    async def test_unknown_zone_is_rejected_by_schema(self, client):
        response = await client.post("/api/v1/rate-cards", json=rate_card_payload(
            zone_multipliers={"zone_z": "1.2"},
        ))
        assert response.status_code == 422

    async def test_stale_update_returns_409(self, client):
        card = await create_active_card(client)

        response = await client.put(f"/api/v1/rate-cards/{card['id']}", json={
            "expected_version": 1, "minimum_fare": "45",
        })
        assert response.status_code == 409
        assert response.json()["details"]["actual_version"] == 2

        response = await client.put(f"/api/v1/rate-cards/{card['id']}", json={
            "expected_version": 2, "minimum_fare": "45",
        })
        assert response.status_code == 200
        assert response.json()["version"] == 3

    async def test_missing_card_returns_404(self, client):
        response = await client.get(f"/api/v1/rate-cards/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["type"] == "RateCardNotFoundError"

    async def test_list_filters_by_status(self, client):
        await create_active_card(client)
        await client.post("/api/v1/rate-cards", json=rate_card_payload(name="Draft Card"))

        response = await client.get("/api/v1/rate-cards", params={"status": "active"})
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["name"] == "Surface Standard"

    async def test_clone_and_bulk_status(self, client):
        card = await create_active_card(client)

        clone = (await client.post(f"/api/v1/rate-cards/{card['id']}/clone")).json()
        assert clone["status"] == "draft"
        assert clone["effective_start"] is None

        response = await client.post("/api/v1/rate-cards/bulk-update-status", json={
            "company_id": str(COMPANY_ID),
            "rate_card_ids": [card["id"], clone["id"]],
            "action": "deactivate",
        })
        result = response.json()
        assert result["succeeded"] == [card["id"], clone["id"]]
        assert result["failed"] == []

    async def test_bulk_adjust_across_companies_is_forbidden(self, client):
        own = await create_active_card(client)
        foreign = await create_active_card(client, company_id=str(OTHER_COMPANY_ID))

        response = await client.post("/api/v1/rate-cards/bulk-adjust-price", json={
            "company_id": str(COMPANY_ID),
            "rate_card_ids": [own["id"], foreign["id"]],
            "adjustment_type": "increase",
            "percentage": "10",
        })

        assert response.status_code == 403
        assert response.json()["details"]["foreign_ids"] == [foreign["id"]]


class TestCourierServiceEndpoints:
    async def test_register_and_fetch(self, client):
        response = await client.post("/api/v1/courier-services", json=courier_payload(zone_support=["A", "zone_b"]))
        assert response.status_code == 201
        service = response.json()
        assert service["zone_support"] == ["zoneA", "zoneB"]

        fetched = await client.get(f"/api/v1/courier-services/{service['id']}")
        assert fetched.json()["display_name"] == "Delhivery Surface"

    async def test_duplicate_service_code(self, client):
        await client.post("/api/v1/courier-services", json=courier_payload())
        response = await client.post("/api/v1/courier-services", json=courier_payload())
        assert response.status_code == 422


class TestSellerPolicyEndpoints:
    async def test_service_cannot_be_both_allowed_and_blocked(self, client):
        service_id = str(uuid.uuid4())
        response = await client.put(f"/api/v1/sellers/{SELLER_ID}/courier-policy", json={
            "company_id": str(COMPANY_ID),
            "allowed_service_ids": [service_id],
            "blocked_service_ids": [service_id, str(uuid.uuid4())],
        })

        assert response.status_code == 422
        assert service_id in response.text

        response = await client.get(f"/api/v1/sellers/{SELLER_ID}/courier-policy")
        assert response.status_code == 404


class TestQuoting:
    async def test_quotes_and_allocation(self, client):
        await create_active_card(client)
        await create_active_card(
            client,
            name="BlueDart Air",
            base_rates=[{
                "carrier": "BlueDart", "service_type": "air",
                "base_price": "90", "min_weight": "0", "max_weight": "5",
            }],
            weight_rules=[],
        )
        await client.post("/api/v1/courier-services", json=courier_payload())
        await client.post("/api/v1/courier-services", json=courier_payload(
            provider="BlueDart", service_code="BD-AIR", service_type="air",
            display_name="BlueDart Air", sla={"edd_min_days": 1, "edd_max_days": 2},
        ))

        shipment = {"company_id": str(COMPANY_ID), "zone": "C", "weight_kg": "1.2"}
        response = await client.post("/api/v1/quotes", json={"shipment": shipment})
        assert response.status_code == 200
        quotes = {q["service_name"]: q for q in response.json()["quotes"]}
        assert quotes["Delhivery Surface"]["total"] == "84.96"
        # 90 x 1.2 = 108, plus 18% GST
        assert quotes["BlueDart Air"]["total"] == "127.44"

        response = await client.put(f"/api/v1/sellers/{SELLER_ID}/courier-policy", json={
            "company_id": str(COMPANY_ID),
            "selection_mode": "auto",
            "auto_priority": "price",
        })
        assert response.status_code == 200

        response = await client.post("/api/v1/quotes/allocate", json={
            "shipment": shipment, "seller_id": str(SELLER_ID),
        })
        selection = response.json()["selection"]
        assert selection["status"] == "ok"
        assert selection["policy_source"] == "seller_policy"
        assert selection["selected"]["service_name"] == "Delhivery Surface"

    async def test_select_without_eligible_quotes(self, client):
        response = await client.post("/api/v1/quotes/select", json={
            "seller_id": str(SELLER_ID),
            "quotes": [{
                "service_id": str(uuid.uuid4()),
                "provider": "Ekart",
                "service_type": "surface",
                "service_name": "Ekart Surface",
                "zone": "zoneC",
                "chargeable_weight": "1",
                "eta_days": {"min": 2, "max": 5},
                "eligible": False,
                "ineligible_reason": "Service is inactive",
            }],
        })

        assert response.status_code == 200
        result = response.json()
        assert result["status"] == "no_eligible_courier"
        assert result["reason"] == "NoEligibleCourier"
        assert result["policy_source"] == "default"

"""
HTTP API tests for /api/quotations and the system endpoints.
"""

from datetime import timedelta

import pytest

from quoteflow.time_utils import utcnow

from conftest import actor_headers, item_ids


CREATE_BODY = {
    "customer_name": "Jane Buyer",
    "customer_email": "jane@example.com",
    "items": [
        {"product_id": "P-1", "product_name": "Widget", "quantity": 2, "unit_price_cents": 1000},
        {"product_id": "P-2", "product_name": "Gadget", "quantity": 1, "unit_price": "5.00"},
    ],
}


def post(client, path, body=None, user_id=7):
    return client.post(f"/api/quotations{path}", json=body or {}, headers=actor_headers(user_id))


def get(client, path, user_id=7, **params):
    return client.get(f"/api/quotations{path}", query_string=params, headers=actor_headers(user_id))


# =============================================================================
# IDENTITY
# =============================================================================


class TestActorHeader:
    def test_missing_header_is_401(self, client, db_session):
        response = client.get("/api/quotations")
        assert response.status_code == 401
        assert response.get_json() == {"error": "Authentication required"}

    def test_non_integer_header_is_400(self, client, db_session):
        response = client.get("/api/quotations", headers={"X-User-Id": "alice"})
        assert response.status_code == 400

    def test_actor_recorded_on_create(self, client, db_session):
        response = post(client, "", CREATE_BODY, user_id=21)
        assert response.status_code == 201
        assert response.get_json()["quotation"]["created_by_user_id"] == 21


# =============================================================================
# FULL FLOW
# =============================================================================


class TestLifecycleFlow:
    def test_create_send_approve_convert_partially_then_fully(self, client, db_session):
        created = post(client, "", CREATE_BODY).get_json()["quotation"]
        qid = created["id"]
        assert created["quotation_number"] == "QT-000001"
        assert created["status"] == "draft"
        assert created["total_cents"] == 2500
        assert created["allowed_actions"] == ["send"]
        first, second = (item["id"] for item in created["items"])

        sent = post(client, f"/{qid}/send", {"notes": "emailed"})
        assert sent.status_code == 200
        assert sent.get_json()["quotation"]["status"] == "sent"
        assert sent.get_json()["notification_sent"] is True

        approved = post(client, f"/{qid}/approve", {"reason": "PO received", "send_notification": False})
        assert approved.status_code == 200
        body = approved.get_json()
        assert body["quotation"]["status"] == "approved"
        assert body["quotation"]["approval_reason"] == "PO received"
        assert body["notification_sent"] is False

        partial = post(client, f"/{qid}/convert", {"item_ids": [first]})
        assert partial.status_code == 201
        body = partial.get_json()
        assert body["conversion_type"] == "partial"
        assert body["order"]["order_number"] == "SO-000001"
        assert body["order"]["total_cents"] == 2000
        assert body["remaining_item_ids"] == [second]
        assert body["quotation"]["status"] == "approved"

        rest = post(client, f"/{qid}/convert")
        assert rest.status_code == 201
        body = rest.get_json()
        assert body["conversion_type"] == "full"
        assert body["order"]["order_number"] == "SO-000002"
        assert body["order"]["total_cents"] == 500
        assert body["quotation"]["status"] == "converted"
        assert body["quotation"]["converted_order_id"] == body["order_id"]

        history = get(client, f"/{qid}/history").get_json()["history"]
        assert [h["new_status"] for h in history] == ["draft", "sent", "approved", "approved", "converted"]

        detail = get(client, f"/{qid}", include_history="true").get_json()["quotation"]
        assert detail["allowed_actions"] == []
        assert len(detail["status_history"]) == 5

    def test_reject_requires_reason(self, client, make_quotation):
        q = make_quotation(status="sent")

        response = post(client, f"/{q.id}/reject", {"reason": "  "})

        assert response.status_code == 400
        assert response.get_json()["details"]["code"] == "reason_required"

    def test_reject_with_reason(self, client, make_quotation):
        q = make_quotation(status="approved")

        response = post(client, f"/{q.id}/reject", {"reason": "Went with a competitor"})

        assert response.status_code == 200
        quotation = response.get_json()["quotation"]
        assert quotation["status"] == "rejected"
        assert quotation["rejection_reason"] == "Went with a competitor"
        assert quotation["rejected_by_user_id"] == 7


# =============================================================================
# ERRORS
# =============================================================================


class TestErrors:
    def test_approve_expired_is_400(self, client, make_quotation):
        q = make_quotation(status="sent", valid_until=utcnow() - timedelta(hours=1))

        response = post(client, f"/{q.id}/approve")

        assert response.status_code == 400
        body = response.get_json()
        assert body["details"]["code"] == "expired"
        assert "expired" in body["error"]

    def test_convert_not_approved_is_400(self, client, make_quotation):
        q = make_quotation(status="sent")
        response = post(client, f"/{q.id}/convert")
        assert response.status_code == 400
        assert response.get_json()["details"]["code"] == "invalid_state"

    def test_convert_unknown_item_is_400(self, client, make_quotation):
        q = make_quotation(status="approved")
        response = post(client, f"/{q.id}/convert", {"item_ids": [9999]})
        assert response.status_code == 400
        assert response.get_json()["details"]["item_ids"] == [9999]

    def test_reconvert_consumed_item_is_400(self, client, make_quotation):
        q = make_quotation(status="approved")
        first = item_ids(q)[0]
        assert post(client, f"/{q.id}/convert", {"item_ids": [first]}).status_code == 201

        response = post(client, f"/{q.id}/convert", {"item_ids": [first]})

        assert response.status_code == 400
        assert response.get_json()["details"]["code"] == "consumed_items"

    def test_item_ids_must_be_list(self, client, make_quotation):
        q = make_quotation(status="approved")
        response = post(client, f"/{q.id}/convert", {"item_ids": "1,2"})
        assert response.status_code == 400

    def test_send_notification_must_be_bool(self, client, make_quotation):
        q = make_quotation(status="draft")
        response = post(client, f"/{q.id}/send", {"send_notification": "yes"})
        assert response.status_code == 400

    def test_unknown_quotation_is_404(self, client, db_session):
        assert get(client, "/424242").status_code == 404
        assert post(client, "/424242/send").status_code == 404

    def test_bad_create_payload_is_400(self, client, db_session):
        response = post(client, "", {"customer_name": "No Email", "items": []})
        assert response.status_code == 400
        assert "customer_email" in response.get_json()["error"]

    @pytest.mark.parametrize(
        "item,message",
        [
            ({"product_id": "P" * 65, "product_name": "Widget", "quantity": 1, "unit_price_cents": 100},
             "product_id exceeds max length"),
            ({"product_id": "P-1", "product_name": "Widget", "quantity": 5_000_000, "unit_price_cents": 1000},
             "line total"),
        ],
    )
    def test_oversized_item_is_400(self, client, db_session, item, message):
        response = post(client, "", dict(CREATE_BODY, items=[item]))
        assert response.status_code == 400
        assert message in response.get_json()["error"]

    def test_non_object_body_is_400(self, client, db_session):
        response = client.post("/api/quotations", json=[1, 2], headers=actor_headers())
        assert response.status_code == 400


# =============================================================================
# DRAFT AUTHORING AND QUERIES
# =============================================================================


class TestDraftRoutes:
    def test_update_delete_duplicate(self, client, db_session):
        qid = post(client, "", CREATE_BODY).get_json()["quotation"]["id"]

        updated = client.put(
            f"/api/quotations/{qid}",
            json={"notes": "Net 30"},
            headers=actor_headers(),
        )
        assert updated.status_code == 200
        assert updated.get_json()["quotation"]["notes"] == "Net 30"

        duplicate = post(client, f"/{qid}/duplicate")
        assert duplicate.status_code == 201
        assert duplicate.get_json()["quotation"]["quotation_number"] == "QT-000002"

        deleted = client.delete(f"/api/quotations/{qid}", headers=actor_headers())
        assert deleted.status_code == 200
        assert deleted.get_json() == {"deleted": True, "id": qid}
        assert get(client, f"/{qid}").status_code == 404

    def test_update_sent_is_400(self, client, make_quotation):
        q = make_quotation(status="sent")
        response = client.put(f"/api/quotations/{q.id}", json={"notes": "x"}, headers=actor_headers())
        assert response.status_code == 400


class TestQueryRoutes:
    def test_list_with_status_filter(self, client, make_quotation):
        make_quotation(status="draft")
        sent = make_quotation(status="sent")
        make_quotation(status="sent", valid_until=utcnow() - timedelta(days=1))

        body = get(client, "", status="sent").get_json()

        assert body["total"] == 1
        assert body["count"] == 1
        assert body["quotations"][0]["id"] == sent.id
        assert "items" not in body["quotations"][0]

    def test_list_bad_limit_is_400(self, client, db_session):
        assert get(client, "", limit="0").status_code == 400

    def test_summary(self, client, make_quotation):
        make_quotation(status="converted")
        make_quotation(status="sent")

        summary = get(client, "/summary").get_json()["summary"]

        assert summary["total_count"] == 2
        assert summary["conversion_rate"] == 0.5

    def test_expiring(self, client, make_quotation):
        soon = make_quotation(status="approved", valid_until=utcnow() + timedelta(days=1))
        make_quotation(status="approved", valid_until=utcnow() + timedelta(days=30))

        body = get(client, "/expiring", days="3").get_json()

        assert body["days"] == 3
        assert [q["id"] for q in body["quotations"]] == [soon.id]

    @pytest.mark.parametrize("days", ["0", "abc"])
    def test_expiring_bad_days(self, client, db_session, days):
        assert get(client, "/expiring", days=days).status_code == 400

    def test_convert_preview_writes_nothing(self, client, make_quotation):
        q = make_quotation(status="approved")
        first, second = item_ids(q)

        response = post(client, f"/{q.id}/convert/preview", {"item_ids": [second]})

        assert response.status_code == 200
        preview = response.get_json()["preview"]
        assert preview["conversion_type"] == "partial"
        assert preview["order_total_cents"] == 500
        assert preview["remaining_item_ids"] == [first]

        detail = get(client, f"/{q.id}").get_json()["quotation"]
        assert detail["open_item_count"] == 2
        assert detail["status"] == "approved"


# =============================================================================
# SYSTEM
# =============================================================================


class TestSystemRoutes:
    def test_health(self, client, db_session):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["details"] == {"quotations": 0}

    def test_version(self, client):
        body = client.get("/version").get_json()
        assert body["api_version"] == "1.0.0"

"""
API tests: envelopes, status codes and role guards over HTTP.
"""
import pytest
from sqlalchemy import update

from db_models import Order
from domain.actor import Actor
from domain.enums import ActorRole

PLACE_BODY = {
    "restaurantId": "rest-1",
    "items": [{"name": "Burrito", "quantity": 3}],
    "deliveryAddress": "42 Elm Street",
}


@pytest.fixture
def place_order(client, auth_headers, customer_actor, restaurant):
    """Place the standard 100.00 order over HTTP and return its id."""

    async def _place() -> str:
        resp = await client.post("/orders", json=PLACE_BODY, headers=auth_headers(customer_actor))
        assert resp.status_code == 201
        return resp.json()["data"]["id"]

    return _place


@pytest.fixture
def pay(client, auth_headers, admin_actor):
    async def _pay(order_id: str):
        resp = await client.post(
            f"/payments/{order_id}/status", json={"paid": True}, headers=auth_headers(admin_actor)
        )
        assert resp.status_code == 200
        return resp.json()["data"]

    return _pay


@pytest.fixture
def completed_order_id(db_session, make_order, driver_a):
    """Factory: id of a completed order owned by customer_actor and delivered by driver_a."""

    async def _make() -> str:
        order = await make_order()
        await db_session.execute(
            update(Order).where(Order.id == order.id).values(status="completed", driver_id=driver_a.id)
        )
        await db_session.commit()
        return order.id

    return _make


class TestHealth:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_health_reports_store_and_dispatchers(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["database_connected"] is True
        assert body["dispatchers_online"] == 0


class TestPlaceOrder:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_customer_places_order(self, client, auth_headers, customer_actor, restaurant):
        resp = await client.post("/orders", json=PLACE_BODY, headers=auth_headers(customer_actor))

        assert resp.status_code == 201
        body = resp.json()
        assert body["success"] is True
        data = body["data"]
        assert data["status"] == "pending"
        assert data["paymentStatus"] == "pending"
        assert data["total"] == 100.0
        assert data["deliveryFee"] == 25.0
        assert data["restaurantName"] == "Holy Tacos"
        assert data["safetyWord"]
        assert data["statusHistory"] == []

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_missing_token_is_unauthorized(self, client):
        resp = await client.post("/orders", json=PLACE_BODY)
        assert resp.status_code == 401
        assert resp.json() == {
            "success": False,
            "error": {
                "code": "unauthorized",
                "message": "Authentication required. Provide Authorization: Bearer <token>.",
                "details": None,
            },
        }

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_couriers_cannot_place_orders(self, client, auth_headers, driver_a_actor, restaurant):
        resp = await client.post("/orders", json=PLACE_BODY, headers=auth_headers(driver_a_actor))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_malformed_body_is_validation_failed(self, client, auth_headers, customer_actor, restaurant):
        resp = await client.post(
            "/orders", json={**PLACE_BODY, "items": []}, headers=auth_headers(customer_actor)
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_failed"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_unknown_menu_item_is_validation_failed(self, client, auth_headers, customer_actor, restaurant):
        body = {**PLACE_BODY, "items": [{"name": "Sushi", "quantity": 1}]}
        resp = await client.post("/orders", json=body, headers=auth_headers(customer_actor))
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["code"] == "validation_failed"
        assert error["details"]["invalidItems"] == ["Sushi"]

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_unknown_restaurant_is_not_found(self, client, auth_headers, customer_actor):
        resp = await client.post(
            "/orders", json={**PLACE_BODY, "restaurantId": "nowhere"}, headers=auth_headers(customer_actor)
        )
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"


class TestReadOrders:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_visibility(self, client, auth_headers, place_order, customer_actor, other_customer_actor, admin_actor):
        order_id = await place_order()

        mine = await client.get("/orders", headers=auth_headers(customer_actor))
        assert [o["id"] for o in mine.json()["data"]] == [order_id]

        theirs = await client.get("/orders", headers=auth_headers(other_customer_actor))
        assert theirs.json()["data"] == []

        everything = await client.get("/orders", headers=auth_headers(admin_actor))
        assert everything.json()["meta"]["count"] == 1

        denied = await client.get(f"/orders/{order_id}", headers=auth_headers(other_customer_actor))
        assert denied.status_code == 403

        missing = await client.get("/orders/does-not-exist", headers=auth_headers(admin_actor))
        assert missing.status_code == 404

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_couriers_use_their_own_listing(self, client, auth_headers, driver_a_actor):
        resp = await client.get("/orders", headers=auth_headers(driver_a_actor))
        assert resp.status_code == 403


class TestLifecycleOverHttp:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_assignment_requires_payment(
        self, client, auth_headers, place_order, pay, admin_actor, driver_a
    ):
        order_id = await place_order()
        body = {"driverId": driver_a.id}

        unpaid = await client.put(f"/orders/{order_id}/assign", json=body, headers=auth_headers(admin_actor))
        assert unpaid.status_code == 409
        assert unpaid.json()["error"]["code"] == "conflict"

        paid = await pay(order_id)
        assert paid["paymentStatus"] == "paid"

        resp = await client.put(f"/orders/{order_id}/assign", json=body, headers=auth_headers(admin_actor))
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["status"] == "assigned"
        assert data["driverId"] == driver_a.id
        assert data["driverName"] == "Alex Courier"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_courier_view_and_skipped_step(
        self, client, auth_headers, place_order, pay, admin_actor, driver_a_actor
    ):
        order_id = await place_order()
        await pay(order_id)
        await client.put(
            f"/orders/{order_id}/assign", json={"driverId": driver_a_actor.user_id}, headers=auth_headers(admin_actor)
        )

        view = await client.get(f"/orders/{order_id}", headers=auth_headers(driver_a_actor))
        assert view.status_code == 200
        assert view.json()["data"]["safetyWord"] is None

        skipped = await client.put(
            f"/orders/{order_id}/status", json={"status": "on_the_way"}, headers=auth_headers(driver_a_actor)
        )
        assert skipped.status_code == 409
        error = skipped.json()["error"]
        assert error["code"] == "invalid_transition"
        assert error["details"] == {"currentStatus": "assigned", "requestedStatus": "on_the_way"}

        heading = await client.put(
            f"/orders/{order_id}/status",
            json={"status": "heading_to_restaurant"},
            headers=auth_headers(driver_a_actor),
        )
        assert heading.status_code == 200
        assert heading.json()["data"]["status"] == "heading_to_restaurant"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_courier_cannot_set_dispatcher_status(
        self, client, auth_headers, place_order, driver_a_actor
    ):
        order_id = await place_order()
        resp = await client.put(
            f"/orders/{order_id}/status", json={"status": "completed"}, headers=auth_headers(driver_a_actor)
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_failed"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_cancel_reports_penalty_and_refund(
        self, client, auth_headers, place_order, pay, admin_actor
    ):
        order_id = await place_order()
        await pay(order_id)

        resp = await client.put(
            f"/orders/{order_id}/cancel", json={"reason": "restaurant closed"}, headers=auth_headers(admin_actor)
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["data"]["status"] == "cancelled_by_admin_with_penalty"
        assert body["meta"] == {"penaltyAmount": 10.0, "refundAmount": 90.0}

        again = await client.put(
            f"/orders/{order_id}/cancel", json={"reason": "twice"}, headers=auth_headers(admin_actor)
        )
        assert again.status_code == 409
        assert again.json()["error"]["code"] == "invalid_transition"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_payment_signal_requires_dispatcher_or_system(
        self, client, auth_headers, place_order, customer_actor
    ):
        order_id = await place_order()

        denied = await client.post(
            f"/payments/{order_id}/status", json={"paid": True}, headers=auth_headers(customer_actor)
        )
        assert denied.status_code == 403

        system = Actor("payments-service", ActorRole.SYSTEM)
        resp = await client.post(
            f"/payments/{order_id}/status", json={"paid": False}, headers=auth_headers(system)
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["paymentStatus"] == "failed"


class TestCourierAndDispatcherViews:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_driver_listing_and_counts(
        self, client, auth_headers, place_order, pay, admin_actor, driver_a_actor
    ):
        order_id = await place_order()
        await pay(order_id)
        await client.put(
            f"/orders/{order_id}/assign", json={"driverId": driver_a_actor.user_id}, headers=auth_headers(admin_actor)
        )

        listing = await client.get("/driver/orders?status=assigned", headers=auth_headers(driver_a_actor))
        assert listing.status_code == 200
        assert [o["id"] for o in listing.json()["data"]] == [order_id]

        counts = await client.get("/driver/orders/counts", headers=auth_headers(driver_a_actor))
        assert counts.json()["data"] == {"assigned": 1, "completedToday": 0, "completedTotal": 0}

        bad = await client.get("/driver/orders?status=everything", headers=auth_headers(driver_a_actor))
        assert bad.status_code == 400

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_available_drivers(self, client, auth_headers, admin_actor, driver_a, driver_b, customer_actor):
        resp = await client.get("/admin/drivers/available", headers=auth_headers(admin_actor))

        assert resp.status_code == 200
        rows = resp.json()["data"]
        assert {r["id"] for r in rows} == {driver_a.id, driver_b.id}
        assert all(r["online"] is False for r in rows)
        assert all(r["driverRating"] == 5.0 for r in rows)

        denied = await client.get("/admin/drivers/available", headers=auth_headers(customer_actor))
        assert denied.status_code == 403

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_courier_toggles_own_availability(
        self, client, auth_headers, admin_actor, driver_a_actor, driver_b
    ):
        off = await client.put(
            "/driver/availability", json={"isAvailable": False}, headers=auth_headers(driver_a_actor)
        )
        assert off.status_code == 200
        assert off.json()["data"]["id"] == driver_a_actor.user_id
        assert off.json()["data"]["isAvailable"] is False

        listing = await client.get("/admin/drivers/available", headers=auth_headers(admin_actor))
        assert [r["id"] for r in listing.json()["data"]] == [driver_b.id]

        not_bool = await client.put(
            "/driver/availability", json={"isAvailable": "no"}, headers=auth_headers(driver_a_actor)
        )
        assert not_bool.status_code == 400
        assert not_bool.json()["error"]["code"] == "validation_failed"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_dispatcher_sets_courier_availability(
        self, client, auth_headers, admin_actor, driver_a_actor, driver_b, customer
    ):
        resp = await client.put(
            f"/admin/drivers/{driver_b.id}/availability",
            json={"isAvailable": False},
            headers=auth_headers(admin_actor),
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["isAvailable"] is False

        not_a_courier = await client.put(
            f"/admin/drivers/{customer.id}/availability",
            json={"isAvailable": False},
            headers=auth_headers(admin_actor),
        )
        assert not_a_courier.status_code == 404
        assert not_a_courier.json()["error"]["code"] == "not_found"

        denied = await client.put(
            f"/admin/drivers/{driver_b.id}/availability",
            json={"isAvailable": True},
            headers=auth_headers(driver_a_actor),
        )
        assert denied.status_code == 403

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_dispatcher_order_counts(
        self, client, auth_headers, place_order, pay, admin_actor, driver_a, customer_actor
    ):
        await place_order()
        queued = await place_order()
        working = await place_order()
        await pay(queued)
        await pay(working)
        await client.put(
            f"/orders/{working}/assign", json={"driverId": driver_a.id}, headers=auth_headers(admin_actor)
        )

        resp = await client.get("/admin/orders/counts", headers=auth_headers(admin_actor))
        assert resp.status_code == 200
        assert resp.json()["data"] == {"active": 1, "awaitingAssignment": 1}

        denied = await client.get("/admin/orders/counts", headers=auth_headers(customer_actor))
        assert denied.status_code == 403


class TestRatingOverHttp:

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_rate_completed_order(self, client, auth_headers, completed_order_id, customer_actor):
        order_id = await completed_order_id()

        resp = await client.post(
            f"/orders/{order_id}/rate",
            json={"driverRating": 4, "driverComment": "on time"},
            headers=auth_headers(customer_actor),
        )

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["driverRating"]["stars"] == 4
        assert data["driverRating"]["comment"] == "on time"
        assert data["restaurantRating"] is None

    @pytest.mark.api
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [{"driverRating": True}, {"driverRating": 4.5}, {"restaurantRating": "5"}],
    )
    async def test_non_integer_stars_are_rejected(
        self, client, auth_headers, completed_order_id, customer_actor, body
    ):
        order_id = await completed_order_id()
        resp = await client.post(f"/orders/{order_id}/rate", json=body, headers=auth_headers(customer_actor))

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_failed"

    @pytest.mark.api
    @pytest.mark.asyncio
    async def test_second_rating_is_a_conflict(self, client, auth_headers, completed_order_id, customer_actor):
        order_id = await completed_order_id()
        headers = auth_headers(customer_actor)

        first = await client.post(f"/orders/{order_id}/rate", json={"driverRating": 5}, headers=headers)
        assert first.status_code == 200

        again = await client.post(f"/orders/{order_id}/rate", json={"driverRating": 1}, headers=headers)
        assert again.status_code == 409
        assert again.json()["error"]["code"] == "conflict"

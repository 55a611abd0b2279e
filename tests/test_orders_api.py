import re
from datetime import date, timedelta

from sqlmodel import select

from app.models.order import Order, OrderItem
from conftest import sign


def _paid(payload, order_id="order_ABC", payment_id="pay_XYZ", signature=None):
    body = dict(payload)
    body["paymentDetails"] = {
        "method": "razorpay",
        "orderId": order_id,
        "paymentId": payment_id,
        "signature": signature or sign(order_id, payment_id),
    }
    return body


def test_full_checkout_persists_confirmed_order(api, customer_headers, order_payload, customer):
    response = api.post("orders", json=_paid(order_payload), headers=customer_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    order = data["order"]
    assert order["status"] == "confirmed"
    assert re.fullmatch(r"ORD\d+", order["orderNumber"])
    assert order["userId"] == str(customer.id)
    assert order["totalAmount"] == 500.0
    assert order["shippingDetails"]["zipCode"] == "560001"
    assert order["shippingDetails"]["deliveryDate"] == "2026-10-25"
    assert order["giftDetails"]["recipientName"] == "Meera"
    assert order["paymentDetails"] == {
        "method": "razorpay",
        "orderId": "order_ABC",
        "paymentId": "pay_XYZ",
    }
    assert order["items"][0]["product"] == "prod-roses"
    assert order["items"][0]["lineTotal"] == 500.0


def test_unverified_payment_is_not_persisted(api, customer_headers, order_payload, session):
    body = _paid(order_payload, signature="f" * 64)

    response = api.post("orders", json=body, headers=customer_headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Payment verification failed"
    assert session.exec(select(Order)).all() == []


def test_razorpay_order_without_callback_fields_is_rejected(api, customer_headers, order_payload):
    response = api.post("orders", json=order_payload, headers=customer_headers)
    assert response.status_code == 400


def test_resubmitting_the_same_payment_returns_the_same_order(api, customer_headers, order_payload, session):
    first = api.post("orders", json=_paid(order_payload), headers=customer_headers).json()
    second = api.post("orders", json=_paid(order_payload), headers=customer_headers)

    assert second.status_code == 200
    assert second.json()["order"]["id"] == first["order"]["id"]
    assert len(session.exec(select(Order)).all()) == 1
    assert len(session.exec(select(OrderItem)).all()) == 1


def test_final_submit_promotes_the_pending_draft(api, customer_headers, order_payload, session):
    created = api.post(
        "orders/create-razorpay-order",
        json={"amount": 50000, "currency": "INR", "order": order_payload},
        headers=customer_headers,
    ).json()

    response = api.post(
        "orders",
        json=_paid(order_payload, order_id=created["id"], payment_id="pay_123"),
        headers=customer_headers,
    )

    order = response.json()["order"]
    assert order["orderNumber"] == created["orderNumber"]
    assert order["status"] == "confirmed"
    assert len(session.exec(select(Order)).all()) == 1


def test_cash_orders_start_pending(api, customer_headers, order_payload):
    body = dict(order_payload, paymentDetails={"method": "cash"})

    response = api.post("orders", json=body, headers=customer_headers)

    assert response.status_code == 200
    assert response.json()["order"]["status"] == "pending"


def test_order_validation(api, customer_headers, order_payload):
    for broken in (
        dict(order_payload, items=[]),
        dict(order_payload, totalAmount=0),
        dict(order_payload, unexpected=True),
        {k: v for k, v in order_payload.items() if k != "shippingDetails"},
    ):
        response = api.post("orders", json=broken, headers=customer_headers)
        assert response.status_code == 422


def test_order_numbers_are_unique_for_back_to_back_orders(api, customer_headers, order_payload):
    numbers = {
        api.post(
            "orders",
            json=_paid(order_payload, payment_id=f"pay_{i}"),
            headers=customer_headers,
        ).json()["order"]["orderNumber"]
        for i in range(5)
    }
    assert len(numbers) == 5


def test_customer_sees_only_own_orders(api, customer_headers, admin_headers, order_payload):
    mine = api.post("orders", json=_paid(order_payload), headers=customer_headers).json()["order"]

    listed = api.get("orders/me", headers=customer_headers).json()
    assert [o["id"] for o in listed] == [mine["id"]]

    assert api.get(f"orders/me/{mine['id']}", headers=customer_headers).status_code == 200
    assert api.get("orders/me", headers=admin_headers).json() == []
    assert api.get(f"orders/me/{mine['id']}", headers=admin_headers).status_code == 404


def test_admin_endpoints_require_admin(api, customer_headers):
    assert api.get("orders", headers=customer_headers).status_code == 403
    assert api.get("orders").status_code == 401


def test_admin_status_transitions(api, customer_headers, admin_headers, order_payload):
    order = api.post("orders", json=_paid(order_payload), headers=customer_headers).json()["order"]
    url = f"orders/{order['id']}/status"

    skipped = api.patch(url, json={"status": "delivered"}, headers=admin_headers)
    assert skipped.status_code == 400

    for status in ("processing", "shipped", "delivered"):
        response = api.patch(url, json={"status": status}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["status"] == status

    reopened = api.patch(url, json={"status": "cancelled"}, headers=admin_headers)
    assert reopened.status_code == 400

    listed = api.get("orders", params={"status": "delivered"}, headers=admin_headers).json()
    assert [o["id"] for o in listed] == [order["id"]]


def test_unknown_status_is_rejected(api, customer_headers, admin_headers, order_payload):
    order = api.post("orders", json=_paid(order_payload), headers=customer_headers).json()["order"]
    response = api.patch(
        f"orders/{order['id']}/status", json={"status": "lost"}, headers=admin_headers
    )
    assert response.status_code == 422


def test_verify_token(api, customer_headers):
    assert api.get("auth/verify-token", headers=customer_headers).json() == {
        "valid": True,
        "role": "user",
    }
    assert api.get(
        "auth/verify-token", headers={"Authorization": "Bearer not-a-jwt"}
    ).json()["valid"] is False
    assert api.get("auth/verify-token").json()["valid"] is False


def test_health_check(client):
    assert client.get("/").json() == {"status": "ok", "service": "sbf-backend"}


def _draft(api, headers, payload):
    return api.post(
        "orders/create-razorpay-order",
        json={"amount": 50000, "currency": "INR", "order": payload},
        headers=headers,
    ).json()


def test_invalid_emails_are_rejected(api, customer_headers, order_payload, session):
    bad_shipping = dict(order_payload)
    bad_shipping["shippingDetails"] = dict(order_payload["shippingDetails"], email="not-an-email")
    bad_gift = dict(order_payload, giftDetails={"recipientEmail": "also bad"})

    for body in (bad_shipping, bad_gift):
        response = api.post("orders", json=_paid(body), headers=customer_headers)
        assert response.status_code == 422
    assert session.exec(select(Order)).all() == []


def test_original_currency_and_item_images_are_stored(api, customer_headers, order_payload, session):
    body = dict(order_payload, originalCurrency="USD", currencyRate=83.2)
    body["items"] = [dict(order_payload["items"][0], images=["roses-1.jpg", "roses-2.jpg"])]

    order = api.post("orders", json=_paid(body), headers=customer_headers).json()["order"]

    assert order["originalCurrency"] == "USD"
    assert order["currencyRate"] == 83.2
    assert order["items"][0]["images"] == ["roses-1.jpg", "roses-2.jpg"]
    assert session.exec(select(Order)).one().original_currency == "USD"
    assert session.exec(select(OrderItem)).one().images == ["roses-1.jpg", "roses-2.jpg"]


def test_tracking_history_follows_status_changes(api, customer_headers, admin_headers, order_payload, admin):
    created = _draft(api, customer_headers, order_payload)
    order = api.post(
        "orders",
        json=_paid(order_payload, order_id=created["id"], payment_id="pay_track"),
        headers=customer_headers,
    ).json()["order"]
    assert [e["status"] for e in order["trackingHistory"]] == ["pending", "confirmed"]

    updated = api.patch(
        f"orders/{order['id']}/status",
        json={"status": "processing", "message": "Florist started the bouquet"},
        headers=admin_headers,
    ).json()

    history = updated["trackingHistory"]
    assert [e["status"] for e in history] == ["pending", "confirmed", "processing"]
    assert history[-1]["message"] == "Florist started the bouquet"
    assert history[-1]["updatedBy"] == str(admin.id)
    assert history[0]["updatedBy"] is None


def test_unpaid_razorpay_order_cannot_be_confirmed_by_admin(api, customer_headers, admin_headers, order_payload, session):
    _draft(api, customer_headers, order_payload)
    draft = session.exec(select(Order)).one()

    response = api.patch(
        f"orders/{draft.id}/status", json={"status": "confirmed"}, headers=admin_headers
    )

    assert response.status_code == 400
    session.refresh(draft)
    assert draft.status == "pending"


def test_cash_order_can_be_confirmed_by_admin(api, customer_headers, admin_headers, order_payload):
    body = dict(order_payload, paymentDetails={"method": "cash"})
    order = api.post("orders", json=body, headers=customer_headers).json()["order"]

    response = api.patch(
        f"orders/{order['id']}/status", json={"status": "confirmed"}, headers=admin_headers
    )

    assert response.status_code == 200
    assert response.json()["status"] == "confirmed"


def test_unpaid_drafts_are_hidden_and_replaced(api, customer_headers, order_payload, session):
    for _ in range(3):
        _draft(api, customer_headers, order_payload)

    assert api.get("orders/me", headers=customer_headers).json() == []

    statuses = sorted(o.status for o in session.exec(select(Order)).all())
    assert statuses == ["cancelled", "cancelled", "pending"]


def test_late_payment_on_replaced_draft_is_still_recorded(api, customer_headers, order_payload, session):
    first = _draft(api, customer_headers, order_payload)
    _draft(api, customer_headers, order_payload)

    verified = api.post(
        "orders/verify-payment",
        json={
            "razorpay_order_id": first["id"],
            "razorpay_payment_id": "pay_late",
            "razorpay_signature": sign(first["id"], "pay_late"),
        },
        headers=customer_headers,
    )
    assert verified.json() == {"success": True, "order": None}

    response = api.post(
        "orders",
        json=_paid(order_payload, order_id=first["id"], payment_id="pay_late"),
        headers=customer_headers,
    )

    assert response.status_code == 200
    order = response.json()["order"]
    assert order["status"] == "confirmed"
    assert order["paymentDetails"]["paymentId"] == "pay_late"
    assert [o["id"] for o in api.get("orders/me", headers=customer_headers).json()] == [order["id"]]


def test_other_users_payment_is_not_disclosed(api, customer_headers, admin_headers, order_payload):
    api.post("orders", json=_paid(order_payload), headers=customer_headers)

    response = api.post("orders", json=_paid(order_payload), headers=admin_headers)

    assert response.status_code == 404
    assert "shippingDetails" not in response.text


def test_other_users_draft_is_not_promoted(api, customer_headers, admin_headers, order_payload, session):
    created = _draft(api, customer_headers, order_payload)

    response = api.post(
        "orders",
        json=_paid(order_payload, order_id=created["id"], payment_id="pay_other"),
        headers=admin_headers,
    )

    assert response.status_code == 404
    assert session.exec(select(Order)).one().status == "pending"


def _due_in(order_payload, days):
    body = dict(order_payload, paymentDetails={"method": "cash"})
    body["shippingDetails"] = dict(
        order_payload["shippingDetails"],
        deliveryDate=(date.today() + timedelta(days=days)).isoformat(),
    )
    return body


def test_upcoming_deliveries(api, customer_headers, admin_headers, order_payload):
    later = api.post("orders", json=_due_in(order_payload, 5), headers=customer_headers).json()["order"]
    soon = api.post("orders", json=_due_in(order_payload, 1), headers=customer_headers).json()["order"]
    api.post("orders", json=_due_in(order_payload, 30), headers=customer_headers)
    api.post("orders", json=_due_in(order_payload, -2), headers=customer_headers)
    cancelled = api.post("orders", json=_due_in(order_payload, 2), headers=customer_headers).json()["order"]
    api.patch(f"orders/{cancelled['id']}/status", json={"status": "cancelled"}, headers=admin_headers)
    _draft(api, customer_headers, _due_in(order_payload, 3) | {"paymentDetails": {"method": "razorpay"}})

    response = api.get("orders/upcoming-deliveries", headers=admin_headers)

    assert response.status_code == 200
    assert [o["id"] for o in response.json()] == [soon["id"], later["id"]]
    assert api.get("orders/upcoming-deliveries", headers=customer_headers).status_code == 403


def test_delivery_calendar_groups_by_date(api, customer_headers, admin_headers, order_payload):
    first = _due_in(order_payload, 0)
    for body in (first, first, _due_in(order_payload, 40)):
        api.post("orders", json=body, headers=customer_headers)
    today = date.today()

    response = api.get(
        "orders/delivery-calendar",
        params={"year": today.year, "month": today.month},
        headers=admin_headers,
    )

    assert response.status_code == 200
    days = response.json()
    assert days[0]["deliveryDate"] == today.isoformat()
    assert days[0]["orderCount"] == 2
    assert len(days[0]["orders"]) == 2
    assert all(d["deliveryDate"].startswith(today.strftime("%Y-%m")) for d in days)

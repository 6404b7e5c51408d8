from decimal import Decimal


def _booking_body(at, **overrides):
    body = {
        "userId": "u1",
        "location": "orchard",
        "startAt": at(10, 10).isoformat(),
        "endAt": at(10, 12).isoformat(),
        "seatNumbers": ["S1"],
        "pax": 1,
    }
    body.update(overrides)
    return body


def _create(client, at, **overrides):
    r = client.post("/api/v1/bookings", json=_booking_body(at, **overrides))
    assert r.status_code == 201, r.text
    return r.json()["booking"]


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_create_and_confirm(client, at, notifier):
    booking = _create(client, at, paymentMethod="paynow")
    assert booking["status"] == "PENDING_PAYMENT"
    assert Decimal(booking["totalCost"]) == Decimal("12")
    assert booking["bookingRef"].startswith("CWK-")

    r = client.post(f"/api/v1/bookings/{booking['id']}/confirm-payment", json={})
    assert r.status_code == 200
    assert r.json()["booking"]["status"] == "CONFIRMED"
    assert notifier.sent == [("booking_confirmed", booking["bookingRef"])]

    again = client.post(f"/api/v1/bookings/{booking['id']}/confirm-payment")
    assert again.json()["alreadyConfirmed"] is True


def test_seat_conflict_error_shape(client, at):
    _create(client, at, seatNumbers=["S3"])
    r = client.post(
        "/api/v1/bookings",
        json=_booking_body(at, userId="u2", seatNumbers=["S3"], startAt=at(10, 11).isoformat(), endAt=at(10, 13).isoformat()),
    )
    assert r.status_code == 409
    body = r.json()
    assert body["error"] == "SeatConflictError"
    assert body["details"]["conflicting_seats"] == ["S3"]
    assert body["details"]["pending_count"] == 1


def test_validation_error_shape(client, at):
    r = client.post("/api/v1/bookings", json=_booking_body(at, pax=2, members=1))
    assert r.status_code == 400
    assert r.json()["error"] == "ValidationError"


def test_unknown_booking_is_404(client):
    r = client.get("/api/v1/discounts/bookings/nope/summary")
    assert r.status_code == 404
    assert r.json()["error"] == "NotFoundError"


def test_discount_summary_and_history(client, at, make_grant, make_promo):
    make_grant(amount="20.00")
    make_promo(code="SAVE10")
    booking = _create(client, at, promoCodeId="SAVE10", creditAmount="5")
    assert Decimal(booking["promoDiscountAmount"]) == Decimal("1.20")
    assert Decimal(booking["totalAmount"]) == Decimal("5.80")

    summary = client.get(f"/api/v1/discounts/bookings/{booking['bookingRef']}/summary").json()
    assert Decimal(summary["totalDiscount"]) == Decimal("6.20")
    assert Decimal(summary["byType"]["CREDIT"]) == Decimal("5")
    assert summary["entryCount"] == 2
    assert summary["reconciliation"]["ok"] is True

    history = client.get(f"/api/v1/discounts/bookings/{booking['id']}/history").json()
    assert sorted(e["discountType"] for e in history) == ["CREDIT", "PROMO_CODE"]
    assert len(client.get("/api/v1/discounts/users/u1/history").json()) == 2


def test_reschedule_and_extend(client, at):
    booking = _create(client, at)
    client.post(f"/api/v1/bookings/{booking['id']}/confirm-payment")

    seats = client.get(
        f"/api/v1/bookings/{booking['id']}/reschedule/available-seats",
        params={"startAt": at(11, 10).isoformat(), "endAt": at(11, 12).isoformat()},
    ).json()
    assert seats["current_seats_available"] is True

    r = client.put(
        f"/api/v1/bookings/{booking['id']}/reschedule",
        json={"userId": "u1", "startAt": at(11, 10).isoformat(), "endAt": at(11, 12).isoformat()},
    )
    assert r.status_code == 200
    assert r.json()["booking"]["rescheduleCount"] == 1

    second = client.put(
        f"/api/v1/bookings/{booking['id']}/reschedule",
        json={"userId": "u1", "startAt": at(12, 10).isoformat(), "endAt": at(12, 12).isoformat()},
    )
    assert second.status_code == 409
    assert second.json()["error"] == "AlreadyRescheduledError"

    quote = client.post(
        f"/api/v1/bookings/{booking['id']}/extend", json={"userId": "u1", "newEndAt": at(11, 13).isoformat()}
    ).json()
    assert Decimal(str(quote["extension_cost"])) == Decimal("6")

    r = client.post(
        f"/api/v1/bookings/{booking['id']}/extend/confirm-payment",
        json={"userId": "u1", "newEndAt": at(11, 13).isoformat(), "paymentId": "pay-ext"},
    )
    assert r.status_code == 200
    assert [Decimal(a) for a in r.json()["booking"]["extensionAmounts"]] == [Decimal("6")]
    assert Decimal(r.json()["booking"]["totalActualCost"]) == Decimal("18")

    timeline = client.get(f"/api/v1/bookings/{booking['bookingRef']}/activity").json()
    kinds = {a["activityType"] for a in timeline}
    assert {"BOOKING_CREATED", "PAYMENT_CONFIRMED", "RESCHEDULE_APPROVED", "EXTEND_APPROVED"} <= kinds


def test_cancel(client, at):
    booking = _create(client, at)
    r = client.post(f"/api/v1/bookings/{booking['id']}/cancel", json={"userId": "u1", "reason": "no longer needed"})
    assert r.status_code == 200
    assert r.json()["booking"]["status"] == "CANCELLED"


def test_pass_endpoints(client, at, make_pass):
    make_pass(count=2)
    r = client.post(
        "/api/v1/passes/validate",
        json={
            "userId": "u1",
            "passType": "DAY_PASS",
            "startAt": at(10, 8).isoformat(),
            "endAt": at(10, 17).isoformat(),
        },
    )
    assert r.status_code == 200
    assert Decimal(str(r.json()["pass_discount"])) == Decimal("48")

    balance = client.get("/api/v1/passes/balance/u1").json()
    assert balance["total_remaining"] == 2

    booking = _create(client, at, startAt=at(10, 8).isoformat(), endAt=at(10, 17).isoformat())
    client.post(f"/api/v1/bookings/{booking['id']}/confirm-payment")
    applied = client.post("/api/v1/passes/apply", json={"userId": "u1", "bookingId": booking["id"], "passId": "DAY_PASS"})
    assert applied.status_code == 200
    assert Decimal(applied.json()["booking"]["passDiscountAmount"]) == Decimal("48")
    assert client.get("/api/v1/passes/balance/u1").json()["total_remaining"] == 1


def test_pass_outside_hours_is_rejected(client, at, make_pass):
    make_pass()
    r = client.post(
        "/api/v1/passes/validate",
        json={"userId": "u1", "passType": "DAY_PASS", "startAt": at(10, 6).isoformat(), "endAt": at(10, 9).isoformat()},
    )
    assert r.status_code == 400
    assert r.json()["details"]["reason"] == "time_restriction"


def test_credit_balance(client, make_grant):
    make_grant(amount="7.50")
    body = client.get("/api/v1/credits/u1").json()
    assert Decimal(str(body["totalAvailable"])) == Decimal("7.50")
    assert len(body["credits"]) == 1
    assert body["usage"] == []


def test_fee_quote(client):
    body = client.post("/api/v1/fees/quote", json={"subtotal": "20", "paymentMethod": "credit_card"}).json()
    assert Decimal(str(body["processing_fee"])) == Decimal("1")
    assert Decimal(str(body["total"])) == Decimal("21")
    assert body["method_family"] == "card"
    assert body["config_stale"] is False

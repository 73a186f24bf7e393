from datetime import date, timedelta

import crud
import lifecycle


def _create_asset(client, name):
    r = client.post("/assets", json={"name": name})
    assert r.status_code == 201, r.text
    return r.json()["id"]


def _days(offset):
    return (crud.today() + timedelta(days=offset)).isoformat()


def _reserve(client, asset_id, holder, start, end):
    return client.post(
        "/reservations",
        json={"asset_id": asset_id, "holder_name": holder, "start_date": start, "end_date": end},
    )


def test_loan_conflict_reports_blocking_record(client):
    asset_id = _create_asset(client, "PC-1")
    r = client.post(
        "/loans",
        json={
            "asset_id": asset_id,
            "holder_name": "Alice",
            "start_date": _days(0),
            "end_date_expected": _days(4),
        },
    )
    assert r.status_code == 201, r.text
    loan_id = r.json()["loan_id"]

    r = _reserve(client, asset_id, "Bob", _days(2), _days(3))
    assert r.status_code == 409
    body = r.json()
    assert body["kind"] == "conflict"
    assert body["blocking_record"]["kind"] == "loan"
    assert body["blocking_record"]["record_id"] == loan_id
    assert body["blocking_record"]["end_date"] is None


def test_reservation_lifecycle_over_http(client):
    asset_id = _create_asset(client, "PC-2")

    r = _reserve(client, asset_id, "Carol", _days(10), _days(12))
    assert r.status_code == 201, r.text
    carol_id = r.json()["reservation_id"]

    r = _reserve(client, asset_id, "Dave", _days(12), _days(15))
    assert r.status_code == 409
    assert r.json()["blocking_record"]["record_id"] == carol_id

    r = _reserve(client, asset_id, "Dave", _days(13), _days(15))
    assert r.status_code == 201

    r = client.get(f"/reservations?asset_id={asset_id}")
    assert [x["holder_name"] for x in r.json()] == ["Carol", "Dave"]

    r = client.delete(f"/reservations/{carol_id}")
    assert r.status_code == 200
    assert r.json() == {"ok": True}

    r = client.delete(f"/reservations/{carol_id}")
    assert r.status_code == 404

    r = _reserve(client, asset_id, "Erin", _days(10), _days(12))
    assert r.status_code == 201


def test_invalid_ranges_are_400(client):
    asset_id = _create_asset(client, "PC-3")

    r = _reserve(client, asset_id, "Carol", _days(5), _days(4))
    assert r.status_code == 400
    assert r.json()["kind"] == "invalid_range"

    r = _reserve(client, asset_id, "Carol", _days(-3), _days(1))
    assert r.status_code == 400

    r = client.post(
        "/loans",
        json={
            "asset_id": asset_id,
            "holder_name": "Alice",
            "start_date": _days(3),
            "end_date_expected": _days(1),
        },
    )
    assert r.status_code == 400


def test_unknown_asset_is_404(client):
    r = _reserve(client, "nope", "Carol", _days(1), _days(2))
    assert r.status_code == 404
    r = client.patch("/assets/nope", json={"name": "x"})
    assert r.status_code == 404


def test_maintenance_endpoints_and_stats(client):
    asset_id = _create_asset(client, "PC-4")
    other_id = _create_asset(client, "PC-5")

    r = client.post(f"/assets/{asset_id}/maintenance", json={"status": "remastering", "reason": "reimage"})
    assert r.status_code == 200
    assert r.json()["status"] == "remastering"

    r = _reserve(client, asset_id, "Carol", _days(1), _days(2))
    assert r.status_code == 409
    assert r.json()["kind"] == "asset_unavailable"

    r = client.post(
        "/loans",
        json={
            "asset_id": other_id,
            "holder_name": "Alice",
            "start_date": _days(-10),
            "end_date_expected": _days(-2),
        },
    )
    assert r.status_code == 201

    r = client.get("/assets/stats")
    stats = r.json()
    assert stats["total"] == 2
    assert stats["remastering"] == 1
    assert stats["loaned"] == 1
    assert [l["holder_name"] for l in stats["overdue"]] == ["Alice"]

    r = client.post(f"/assets/{asset_id}/maintenance/end")
    assert r.json()["status"] == "available"

    r = client.post(f"/assets/{asset_id}/maintenance/end")
    assert r.status_code == 409
    assert r.json()["kind"] == "illegal_transition"

    r = client.get("/assets?status=loaned")
    assert [a["id"] for a in r.json()] == [other_id]


def test_archive_endpoint(client):
    asset_id = _create_asset(client, "PC-6")
    r = client.delete(f"/assets/{asset_id}", headers={"X-Actor": "admin"})
    assert r.status_code == 200
    assert r.json()["archived_at"] is not None

    assert client.get("/assets").json() == []

    r = client.get(f"/history?asset_id={asset_id}")
    assert [e["event_type"] for e in r.json()] == ["asset_archived"]
    assert r.json()[0]["actor"] == "admin"


def test_calendar_and_history_endpoints(client):
    asset_id = _create_asset(client, "PC-7")
    r = _reserve(client, asset_id, "Carol", _days(1), _days(1))
    reservation_id = r.json()["reservation_id"]

    day = crud.today() + timedelta(days=1)
    r = client.get(f"/calendar/{day.year}/{day.month}")
    assert r.status_code == 200
    buckets = {b["day"]: b["events"] for b in r.json()["days"]}
    assert [e["record_id"] for e in buckets[day.isoformat()]] == [reservation_id]
    assert buckets[day.isoformat()][0]["kind"] == "reserved"

    r = client.get(f"/calendar/day/{day.isoformat()}")
    assert r.status_code == 200
    assert [e["record_id"] for e in r.json()] == [reservation_id]

    r = client.get("/calendar/2024/13")
    assert r.status_code == 400

    r = client.get(f"/history?asset_id={asset_id}")
    assert [e["event_type"] for e in r.json()] == ["reservation_created"]

    r = client.get("/history?event_type=loan_created")
    assert r.json() == []

    r = client.get(f"/history?from={crud.today().isoformat()}&to={crud.today().isoformat()}")
    assert len(r.json()) == 1

    r = client.get("/history?from=yesterday")
    assert r.status_code == 400


def test_lookup_404s_carry_error_kind(client):
    for path in ("/assets/nope", "/loans/nope"):
        r = client.get(path)
        assert r.status_code == 404
        assert r.json()["kind"] == "not_found"


def test_reads_never_show_lapsed_pending_status(client, db_session):
    asset_id = _create_asset(client, "PC-8")
    lifecycle.create_reservation(
        db_session,
        asset_id,
        holder_name="Carol",
        start_date=date(2024, 6, 1),
        end_date=date(2024, 6, 1),
        created_by="desk",
        today=date(2024, 6, 1),
    )
    db_session.expire_all()
    assert crud.get_asset(db_session, asset_id).status == "reserved_pending"

    stats = client.get("/assets/stats").json()
    assert stats["reserved_pending"] == 0
    assert stats["available"] == 1
    assert client.get("/assets?status=reserved_pending").json() == []
    assert client.get(f"/assets/{asset_id}").json()["status"] == "available"

    r = client.post(f"/assets/{asset_id}/maintenance", json={"status": "out_of_service"})
    assert r.status_code == 200
    assert r.json()["status"] == "out_of_service"

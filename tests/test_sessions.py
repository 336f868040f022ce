from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from mentorconnect.models import BookingDB
from mentorconnect.routers.sessions import scheduled_window


def confirmed_booking(client, aspirant, mentor, when=None, fund=None):
    when = when or datetime.now(ZoneInfo("Asia/Kolkata")) + timedelta(minutes=5)
    payload = {"date": when.strftime("%Y-%m-%d"), "time": when.strftime("%H:%M")}
    if fund:
        fund(aspirant["user"]["id"], 500)
        r = client.post("/api/bookings/wallet-booking", json={"mentor_id": mentor["user"]["id"], "amount": 500,
                                                               **payload}, headers=aspirant["headers"])
        booking = r.json()["booking"]
    else:
        r = client.post("/api/bookings", json={"achiever_id": mentor["user"]["id"], **payload},
                        headers=aspirant["headers"])
        booking = r.json()
    assert r.status_code == 201, r.text
    r = client.put(f"/api/bookings/{booking['id']}/status", json={"status": "confirmed"}, headers=mentor["headers"])
    assert r.status_code == 200
    return booking


def create_session_ok(client, user, booking):
    r = client.post("/api/sessions", json={"booking_id": booking["id"]}, headers=user["headers"])
    assert r.status_code == 201, r.text
    return r.json()


def test_scheduled_window_is_utc():
    booking = BookingDB(date="2030-01-15", time="10:00", duration=60)
    start, end = scheduled_window(booking)
    assert start == datetime(2030, 1, 15, 4, 30)
    assert end == datetime(2030, 1, 15, 5, 30)


def test_create_session(client, aspirant, mentor):
    booking = confirmed_booking(client, aspirant, mentor)
    session = create_session_ok(client, aspirant, booking)
    assert session["status"] == "scheduled"
    assert session["room_id"].startswith("room_")
    assert session["attendance_pattern"] == "neither-joined"

    b = client.get(f"/api/bookings/{booking['id']}", headers=aspirant["headers"]).json()
    assert b["meeting_link"] == f"/session/{session['room_id']}"


def test_create_session_requires_confirmed_booking(client, aspirant, mentor):
    r = client.post("/api/bookings", json={"achiever_id": mentor["user"]["id"], "date": "2030-01-15", "time": "10:00"},
                    headers=aspirant["headers"])
    r = client.post("/api/sessions", json={"booking_id": r.json()["id"]}, headers=aspirant["headers"])
    assert r.status_code == 400


def test_create_session_twice(client, aspirant, mentor):
    booking = confirmed_booking(client, aspirant, mentor)
    create_session_ok(client, aspirant, booking)
    r = client.post("/api/sessions", json={"booking_id": booking["id"]}, headers=mentor["headers"])
    assert r.status_code == 400


def test_create_session_by_outsider(client, aspirant, mentor, signup):
    booking = confirmed_booking(client, aspirant, mentor)
    other = signup("other@example.com")
    r = client.post("/api/sessions", json={"booking_id": booking["id"]}, headers=other["headers"])
    assert r.status_code == 403


def test_lookup_sessions(client, aspirant, mentor):
    booking = confirmed_booking(client, aspirant, mentor)
    session = create_session_ok(client, aspirant, booking)

    r = client.get(f"/api/sessions/booking/{booking['id']}", headers=mentor["headers"])
    assert r.json()["id"] == session["id"]
    r = client.get(f"/api/sessions/{session['id']}", headers=mentor["headers"])
    assert r.json()["room_id"] == session["room_id"]
    r = client.get(f"/api/sessions/user/{mentor['user']['id']}", headers=mentor["headers"])
    assert [s["id"] for s in r.json()] == [session["id"]]

    assert client.get("/api/sessions/booking/999999", headers=mentor["headers"]).status_code == 404
    assert client.get("/api/sessions/999999", headers=mentor["headers"]).status_code == 404


def test_join_inside_window(client, aspirant, mentor):
    booking = confirmed_booking(client, aspirant, mentor)
    session = create_session_ok(client, aspirant, booking)

    r = client.put(f"/api/sessions/{session['id']}/join", headers=aspirant["headers"])
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "ongoing"
    assert r.json()["attendance_pattern"] == "aspirant-only"
    assert r.json()["actual_start_time"] is not None

    r = client.put(f"/api/sessions/{session['id']}/join", headers=mentor["headers"])
    assert r.json()["attendance_pattern"] == "both-joined"


def test_join_outside_window(client, aspirant, mentor):
    later = datetime.now(ZoneInfo("Asia/Kolkata")) + timedelta(days=2)
    booking = confirmed_booking(client, aspirant, mentor, when=later)
    session = create_session_ok(client, aspirant, booking)
    r = client.put(f"/api/sessions/{session['id']}/join", headers=aspirant["headers"])
    assert r.status_code == 400
    assert "join window" in r.json()["detail"]


def test_join_by_outsider(client, aspirant, mentor, signup):
    booking = confirmed_booking(client, aspirant, mentor)
    session = create_session_ok(client, aspirant, booking)
    other = signup("other@example.com")
    r = client.put(f"/api/sessions/{session['id']}/join", headers=other["headers"])
    assert r.status_code == 403


def test_complete_session_releases_funds(client, aspirant, mentor, fund_wallet):
    booking = confirmed_booking(client, aspirant, mentor, fund=fund_wallet)
    session = create_session_ok(client, aspirant, booking)

    r = client.put(f"/api/sessions/{session['id']}/complete", json={"rating": 5, "feedback": "Very helpful"},
                   headers=aspirant["headers"])
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["status"] == "completed"
    assert body["rating"] == 5
    assert body["feedback"] == "Very helpful"
    assert body["completed_at"] is not None

    b = client.get(f"/api/bookings/{booking['id']}", headers=aspirant["headers"]).json()
    assert b["status"] == "completed"
    wallet = client.get(f"/api/wallets/user/{mentor['user']['id']}", headers=mentor["headers"]).json()
    assert wallet["balance"] == 440

    r = client.put(f"/api/sessions/{session['id']}/complete", json={}, headers=aspirant["headers"])
    assert r.status_code == 400

    r = client.put(f"/api/sessions/{session['id']}/join", headers=aspirant["headers"])
    assert r.status_code == 400


def test_complete_rejects_bad_rating(client, aspirant, mentor):
    booking = confirmed_booking(client, aspirant, mentor)
    session = create_session_ok(client, aspirant, booking)
    r = client.put(f"/api/sessions/{session['id']}/complete", json={"rating": 6}, headers=aspirant["headers"])
    assert r.status_code == 422

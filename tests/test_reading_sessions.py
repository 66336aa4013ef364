from datetime import datetime, timedelta, timezone

from reader_api.models.progress import Progress
from reader_api.models.reading_session import ReadingSession


def test_start_returns_existing_active_session(client, db, users, book, auth):
    h = auth(users["student"], "student")
    r1 = client.post("/api/reading-sessions/start", json={"bookId": book}, headers=h)
    assert r1.status_code == 200
    assert r1.json()["resumed"] is False

    r2 = client.post("/api/reading-sessions/start", json={"book_id": book}, headers=h)
    assert r2.json()["resumed"] is True
    assert r2.json()["session"]["id"] == r1.json()["session"]["id"]
    assert db.query(ReadingSession).count() == 1


def test_end_adds_seconds_to_progress(client, db, users, book, auth):
    h = auth(users["student"], "student")
    client.post("/api/reading-sessions/start", json={"bookId": book}, headers=h)

    # pretend the session started five minutes ago
    session = db.query(ReadingSession).one()
    session.start_time = datetime.now(timezone.utc) - timedelta(minutes=5)
    db.commit()

    r = client.post("/api/reading-sessions/end", json={"bookId": book}, headers=h)
    assert r.status_code == 200
    total = r.json()["totalSeconds"]
    assert 299 <= total <= 310
    assert r.json()["session"]["endTime"] is not None

    progress = db.query(Progress).filter(Progress.user_id == users["student"]).one()
    assert progress.total_reading_time == total


def test_end_without_active_session_is_404(client, users, book, auth):
    r = client.post("/api/reading-sessions/end", json={"bookId": book}, headers=auth(users["student"], "student"))
    assert r.status_code == 404
    assert r.json()["message"] == "No active reading session found"


def test_start_unknown_book_is_404(client, users, auth):
    r = client.post("/api/reading-sessions/start", json={"bookId": 777}, headers=auth(users["student"], "student"))
    assert r.status_code == 404

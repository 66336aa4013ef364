from reader_api.models.badge import Badge, BookBadge, EarnedBadge
from reader_api.models.user import User
from reader_api.services.badges import award_exclusive_by_slug, award_if_eligible


def test_award_is_unique_per_user_and_badge(db):
    db.add(User(id=7, username="seven", role="student"))
    db.add(Badge(id=3, name="Bookworm"))
    db.commit()

    first = award_if_eligible(db, 7, 3)
    second = award_if_eligible(db, 7, 3)

    assert first.awarded is True and first.already_had is False
    assert second.awarded is False and second.already_had is True
    assert db.query(EarnedBadge).filter(EarnedBadge.user_id == 7, EarnedBadge.badge_id == 3).count() == 1


def test_exclusive_unknown_slug_is_noop(db, users):
    out = award_exclusive_by_slug(db, users["student"], "little-turtle")
    assert out.attempted is False
    assert out.awarded is False


def test_exclusive_badge_not_seeded_is_noop(db, users):
    out = award_exclusive_by_slug(db, users["student"], "bernardo-carpio")
    assert out.attempted is True
    assert out.awarded is False
    assert out.badge_id is None
    assert db.query(EarnedBadge).count() == 0


def test_exclusive_award_endpoint(client, db, users, auth):
    db.add(Badge(name="Sun & Moon Finisher"))
    db.commit()
    h = auth(users["student"], "student")

    r = client.post("/api/stories/sun-moon/award-exclusive-badge", headers=h)
    body = r.json()
    assert body["attempted"] is True
    assert body["awarded"] is True
    assert body["badgeName"] == "Sun & Moon Finisher"

    again = client.post("/api/stories/sun-moon/award-exclusive-badge", headers=h).json()
    assert again["awarded"] is False
    assert again["alreadyHad"] is True


# -----------------------
# Catalog
# -----------------------
def test_create_and_list_badges(client, users, auth):
    staff = auth(users["teacher"], "teacher")
    r = client.post(
        "/api/badges",
        json={"name": "  Star Reader ", "description": "Read five books", "themeColors": {"primary": "#000"}},
        headers=staff,
    )
    assert r.status_code == 201
    badge = r.json()["badge"]
    assert badge["name"] == "Star Reader"
    assert badge["themeColors"] == {"primary": "#000"}
    assert badge["createdById"] == users["teacher"]

    client.post("/api/badges", json={"name": "Quiz Whiz", "isActive": False}, headers=staff)

    listing = client.get("/api/badges", headers=auth(users["student"], "student")).json()["badges"]
    assert {b["name"] for b in listing} == {"Star Reader", "Quiz Whiz"}

    active = client.get("/api/badges", params={"active": "true"}, headers=staff).json()["badges"]
    assert [b["name"] for b in active] == ["Star Reader"]

    found = client.get("/api/badges", params={"search": "five"}, headers=staff).json()["badges"]
    assert [b["name"] for b in found] == ["Star Reader"]


def test_badge_name_too_short_is_400(client, users, auth):
    r = client.post("/api/badges", json={"name": "x"}, headers=auth(users["admin"], "admin"))
    assert r.status_code == 400


def test_patch_and_delete_badge(client, db, users, book, auto_badge, auth):
    staff = auth(users["teacher"], "teacher")
    r = client.patch(f"/api/badges/{auto_badge}", json={"isActive": False}, headers=staff)
    assert r.status_code == 200
    assert r.json()["badge"]["isActive"] is False

    # teachers cannot delete, admins can
    assert client.delete(f"/api/badges/{auto_badge}", headers=staff).status_code == 403

    award_if_eligible(db, users["student"], auto_badge)
    r2 = client.delete(f"/api/badges/{auto_badge}", headers=auth(users["admin"], "admin"))
    assert r2.status_code == 200
    assert db.query(Badge).count() == 0
    assert db.query(BookBadge).count() == 0
    assert db.query(EarnedBadge).count() == 0


def test_patch_unknown_badge_is_404(client, users, auth):
    r = client.patch("/api/badges/123", json={"name": "Whatever"}, headers=auth(users["admin"], "admin"))
    assert r.status_code == 404


# -----------------------
# Book mappings
# -----------------------
def test_attach_badge_to_book(client, db, users, book, auth):
    db.add(Badge(name="Turtle Fan"))
    db.commit()
    badge_id = db.query(Badge.id).filter(Badge.name == "Turtle Fan").scalar()
    staff = auth(users["teacher"], "teacher")

    r = client.post(
        f"/api/books/{book}/badges",
        json={"badgeId": badge_id, "awardMethod": "weird", "completionThreshold": 250},
        headers=staff,
    )
    assert r.status_code == 201
    mapping = r.json()["bookBadge"]
    assert mapping["awardMethod"] == "auto_on_book_complete"
    assert mapping["completionThreshold"] == 100
    assert mapping["badge"]["name"] == "Turtle Fan"

    again = client.post(f"/api/books/{book}/badges", json={"badge_id": badge_id}, headers=staff)
    assert again.status_code == 200
    assert again.json()["message"] == "Badge already attached"

    listing = client.get(f"/api/books/{book}/badges", headers=auth(users["student"], "student")).json()
    assert [m["badgeId"] for m in listing["bookBadges"]] == [badge_id]


def test_threshold_lower_bound_and_manual_method(client, db, users, book, auth):
    db.add(Badge(name="Page Turner"))
    db.commit()
    badge_id = db.query(Badge.id).filter(Badge.name == "Page Turner").scalar()

    r = client.post(
        f"/api/books/{book}/badges",
        json={"badgeId": badge_id, "awardMethod": "manual", "completionThreshold": 0},
        headers=auth(users["admin"], "admin"),
    )
    mapping = r.json()["bookBadge"]
    assert mapping["awardMethod"] == "manual"
    assert mapping["completionThreshold"] == 1


def test_attach_to_missing_book_or_badge_is_404(client, users, book, auto_badge, auth):
    staff = auth(users["admin"], "admin")
    assert client.post("/api/books/999/badges", json={"badgeId": auto_badge}, headers=staff).status_code == 404
    assert client.post(f"/api/books/{book}/badges", json={"badgeId": 999}, headers=staff).status_code == 404


def test_detach_badge(client, users, book, auto_badge, auth):
    staff = auth(users["teacher"], "teacher")
    r = client.delete(f"/api/books/{book}/badges/{auto_badge}", headers=staff)
    assert r.status_code == 200

    r2 = client.delete(f"/api/books/{book}/badges/{auto_badge}", headers=staff)
    assert r2.status_code == 404


# -----------------------
# Earned badges
# -----------------------
def test_manual_award_and_listing(client, users, book, auto_badge, auth):
    staff = auth(users["teacher"], "teacher")
    r = client.post(
        f"/api/users/{users['student']}/badges",
        json={"badgeId": auto_badge, "bookId": book, "note": "Great reading"},
        headers=staff,
    )
    assert r.status_code == 201
    earned = r.json()["earnedBadge"]
    assert earned["awardedById"] == users["teacher"]
    assert earned["note"] == "Great reading"

    again = client.post(f"/api/users/{users['student']}/badges", json={"badgeId": auto_badge}, headers=staff)
    assert again.status_code == 200
    assert again.json()["message"] == "Badge already earned"

    mine = client.get(f"/api/users/{users['student']}/badges", headers=auth(users["student"], "student")).json()
    assert [e["badgeId"] for e in mine["earnedBadges"]] == [auto_badge]
    assert mine["earnedBadges"][0]["badge"]["name"] == "Turtle Finisher"


def test_student_cannot_view_other_students_badges(client, users, auth):
    r = client.get(f"/api/users/{users['other']}/badges", headers=auth(users["student"], "student"))
    assert r.status_code == 403


def test_manual_award_to_missing_user_is_404(client, users, auto_badge, auth):
    r = client.post("/api/users/4040/badges", json={"badgeId": auto_badge}, headers=auth(users["admin"], "admin"))
    assert r.status_code == 404


def test_non_finite_threshold_is_400(client, users, book, auto_badge, auth):
    staff = auth(users["admin"], "admin")
    for value in ("inf", "NaN"):
        r = client.post(
            f"/api/books/{book}/badges",
            json={"badgeId": auto_badge, "completionThreshold": value},
            headers=staff,
        )
        assert r.status_code == 400
        assert r.json()["message"] == "completionThreshold must be a number"

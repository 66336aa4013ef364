import pytest
from fastapi.testclient import TestClient

from reader_api.core.config import Settings
from reader_api.core.security import create_access_token
from reader_api.db.session import Database, get_db
from reader_api.main import create_app
from reader_api.models.badge import Badge, BookBadge
from reader_api.models.book import Book, Page
from reader_api.models.user import User

TEST_SETTINGS = Settings(
    database_url="sqlite://",
    env="test",
    jwt_secret="test-secret",
    jwt_algorithm="HS256",
    log_level="WARNING",
    disable_startup_seed=True,
)


@pytest.fixture
def database():
    database = Database(TEST_SETTINGS.database_url)
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture
def db(database):
    # expire on commit so reads after a request see what the request wrote
    session = database.session_factory(expire_on_commit=True)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def app(database, db):
    app = create_app(settings=TEST_SETTINGS, database=database)

    # one in-memory connection: requests share the test's session
    def _get_test_db():
        yield db

    app.dependency_overrides[get_db] = _get_test_db
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def users(db):
    """student (approved), second student, teacher, admin"""
    rows = {
        "student": User(username="ana", email="ana@school.test", role="student", grade_level="3", approval_status="approved"),
        "other": User(username="ben", email="ben@school.test", role="student", grade_level="4", approval_status="approved"),
        "teacher": User(username="tess", email="tess@school.test", role="teacher", approval_status="approved"),
        "admin": User(username="root", email="root@school.test", role="admin", approval_status="approved"),
    }
    db.add_all(rows.values())
    db.commit()
    return {k: v.id for k, v in rows.items()}


@pytest.fixture
def book(db):
    b = Book(title="The Little Turtle", description="A short story.", type="storybook", grade="1", slug="little-turtle")
    db.add(b)
    db.commit()
    pages = [Page(book_id=b.id, page_number=n, content=f"page {n}") for n in range(1, 9)]
    db.add_all(pages)
    db.commit()
    return b.id


@pytest.fixture
def auto_badge(db, book):
    badge = Badge(name="Turtle Finisher", description="Finished the turtle story", is_active=True)
    db.add(badge)
    db.flush()
    db.add(BookBadge(book_id=book, badge_id=badge.id, award_method="auto_on_book_complete", completion_threshold=100))
    db.commit()
    return badge.id


def make_token(user_id: int, role: str, username: str = "someone", **kw) -> str:
    return create_access_token(TEST_SETTINGS, user_id, role, username, **kw)


def auth(user_id: int, role: str) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, role)}"}


@pytest.fixture(name="auth")
def auth_fixture():
    return auth


@pytest.fixture(name="make_token")
def make_token_fixture():
    return make_token


@pytest.fixture
def settings():
    return TEST_SETTINGS

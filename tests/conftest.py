import os

# Configuration is read at import time, so it has to be in place first
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("OPENAI_API_KEY", "")

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from virtualib.database import Base, get_db
from virtualib.main import app, seed_roles
from virtualib.models.book import Book, Category
from virtualib.models.borrow_request import BorrowRequest
from virtualib.models.library import Library, LibrarySettings
from virtualib.models.loan import Loan
from virtualib.models.user import ROLE_ADMIN, ROLE_LIBRARIAN, ROLE_USER, Role, User
from virtualib.services.auth import get_password_hash, issue_token_for, load_user_with_memberships
from virtualib.services.mailer import EmailService, get_email_service
from virtualib.services.scope import Principal
from virtualib.services.summarizer import get_summarizer
from virtualib.utils.timezone import now_local

PASSWORD = "secret123"


class FakeSummarizer:
    """Stands in for the OpenAI backed summarizer."""

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    @property
    def enabled(self):
        return self.result is not None or self.error is not None

    async def generate(self, title, author):
        self.calls.append((title, author))
        if self.error is not None:
            raise self.error
        return self.result


class FakeEmailService(EmailService):
    """Records messages instead of delivering them."""

    def __init__(self, error=None):
        super().__init__(timeout=1)
        self.error = error
        self.sent = []

    async def send(self, config, message):
        if self.error is not None:
            raise self.error
        self.sent.append((config, message))


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'virtualib.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    seed_roles(session)
    yield session
    session.close()


@pytest.fixture
def summarizer():
    return FakeSummarizer()


@pytest.fixture
def email_service():
    return FakeEmailService()


@pytest.fixture
def client(session_factory, db, summarizer, email_service):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_summarizer] = lambda: summarizer
    app.dependency_overrides[get_email_service] = lambda: email_service
    yield TestClient(app)
    app.dependency_overrides.clear()


def _role(db, name):
    return db.query(Role).filter(Role.role_name == name).one()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role=ROLE_USER, libraries=(), email=None, name="Test", surname="User",
              password=PASSWORD, is_active=True, deleted=False):
        counter["n"] += 1
        user = User(
            name=name,
            surname=surname,
            email=email or f"{role}{counter['n']}@virtualib.org",
            role_id=_role(db, role).id,
            password_hash=get_password_hash(password),
            is_active=is_active,
            deleted_at=now_local() if deleted else None,
        )
        user.libraries = list(libraries)
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_library(db):
    def _make(name="Main", owner=None, with_settings=True):
        library = Library(name=name, owner_id=owner.id if owner else None)
        if with_settings:
            library.settings = LibrarySettings(email_provider="smtp", overdue_days=14)
        db.add(library)
        db.commit()
        return library

    return _make


@pytest.fixture
def make_category(db):
    def _make(library, name="Fiction"):
        category = Category(name=name, library_id=library.id)
        db.add(category)
        db.commit()
        return category

    return _make


@pytest.fixture
def make_book(db):
    counter = {"n": 0}

    def _make(library, title="Dune", author="Frank Herbert", categories=(), deleted=False):
        counter["n"] += 1
        book = Book(
            library_id=library.id,
            title=title,
            author=author,
            isbn=f"978000000{counter['n']:04d}",
            publish_year=1965,
            publisher="Chilton",
            deleted_at=now_local() if deleted else None,
        )
        book.categories = list(categories)
        db.add(book)
        db.commit()
        return book

    return _make


@pytest.fixture
def make_request(db):
    def _make(book, user, status="pending", requested_at=None):
        request = BorrowRequest(
            library_id=book.library_id,
            book_id=book.id,
            user_id=user.id,
            status=status,
            requested_at=requested_at or now_local(),
        )
        db.add(request)
        db.commit()
        return request

    return _make


@pytest.fixture
def make_loan(db):
    def _make(book, user, status="active", returned=False, updated_at=None, borrowed_at=None):
        now = now_local()
        loan = Loan(
            library_id=book.library_id,
            book_id=book.id,
            user_id=user.id,
            borrowed_at=borrowed_at or now,
            due_at=(borrowed_at or now) + timedelta(days=14),
            returned_at=now if returned else None,
            status=status,
        )
        if updated_at is not None:
            loan.updated_at = updated_at
        db.add(loan)
        db.commit()
        return loan

    return _make


def auth_headers(user):
    return {"Authorization": f"Bearer {issue_token_for(user)}"}


def principal_for(db, user):
    return Principal.from_user(load_user_with_memberships(db, id=user.id))


@pytest.fixture
def admin(make_user):
    return make_user(ROLE_ADMIN, name="Ada", surname="Admin")


@pytest.fixture
def scenario(db, admin, make_user, make_library, make_book):
    """Library "Main" with Dune and Sapiens, and two members U1 and U2."""
    main = make_library("Main")
    dune = make_book(main, "Dune", "Frank Herbert")
    sapiens = make_book(main, "Sapiens", "Yuval Noah Harari")
    u1 = make_user(ROLE_USER, libraries=[main], name="Uma")
    u2 = make_user(ROLE_USER, libraries=[main], name="Umut")
    return {"admin": admin, "library": main, "dune": dune, "sapiens": sapiens, "u1": u1, "u2": u2}


@pytest.fixture
def tenants(db, make_user, make_library, make_book):
    """Librarian LR owns L1, is assigned to L2 and has nothing to do with L3."""
    librarian = make_user(ROLE_LIBRARIAN, name="Lara")
    l1 = make_library("L1", owner=librarian)
    l2 = make_library("L2")
    l3 = make_library("L3")
    librarian.libraries = [l2]
    db.commit()
    return {
        "librarian": librarian,
        "l1": l1,
        "l2": l2,
        "l3": l3,
        "b1": make_book(l1, "Dune"),
        "b1_disabled": make_book(l1, "Old Atlas", deleted=True),
        "b2": make_book(l2, "Sapiens"),
        "b3": make_book(l3, "Ulysses"),
    }

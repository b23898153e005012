import pytest
from sqlalchemy.sql.elements import False_, True_

from virtualib.errors import Forbidden, NotFound
from virtualib.models.book import Book
from virtualib.models.user import ROLE_ADMIN, ROLE_LIBRARIAN, ROLE_USER
from virtualib.services.access import authorize, ensure_actor, ensure_in_scope, ensure_library_writable
from virtualib.services.scope import EMPTY, UNRESTRICTED, LibraryScope, Principal, ScopeKind, resolve_scope
from virtualib.services.transitions import Actor


def principal(role, owned=(), assigned=(), id=1):
    return Principal(id=id, role=role, owned_library_ids=frozenset(owned), assigned_library_ids=frozenset(assigned))


ADMIN = principal(ROLE_ADMIN)
LIBRARIAN = principal(ROLE_LIBRARIAN, owned={1}, assigned={2})
USER = principal(ROLE_USER, assigned={1})


@pytest.mark.parametrize("kind", list(ScopeKind))
def test_admin_scope_is_unrestricted(kind):
    assert resolve_scope(ADMIN, kind) is UNRESTRICTED


def test_librarian_reads_and_writes_owned_and_assigned():
    assert resolve_scope(LIBRARIAN, ScopeKind.READ).library_ids == {1, 2}
    assert resolve_scope(LIBRARIAN, ScopeKind.WRITE).library_ids == {1, 2}
    assert resolve_scope(LIBRARIAN, ScopeKind.OWNER).library_ids == {1}


def test_user_sees_assigned_and_owns_nothing():
    assert resolve_scope(USER, ScopeKind.READ).library_ids == {1}
    assert resolve_scope(USER, ScopeKind.OWNER).library_ids == frozenset()


def test_ownership_only_counts_for_librarians():
    odd = principal(ROLE_USER, owned={5}, assigned={1})
    assert resolve_scope(odd, ScopeKind.READ).library_ids == {1}


def test_unknown_role_gets_empty_scope():
    assert resolve_scope(principal("guest", assigned={1})) is EMPTY


def test_narrowing_outside_scope_yields_empty():
    scope = resolve_scope(LIBRARIAN)
    assert scope.narrowed_to(2).library_ids == {2}
    assert scope.narrowed_to(3).library_ids == frozenset()
    assert scope.narrowed_to(None) is scope
    assert UNRESTRICTED.narrowed_to(9).library_ids == {9}


def test_filter_predicates():
    assert isinstance(UNRESTRICTED.filter(Book.library_id), True_)
    assert isinstance(EMPTY.filter(Book.library_id), False_)
    restricted = LibraryScope(frozenset({3, 1})).filter(Book.library_id)
    compiled = str(restricted.compile(compile_kwargs={"literal_binds": True}))
    assert compiled == "book.library_id IN (1, 3)"


def test_intersects():
    owner_scope = resolve_scope(LIBRARIAN, ScopeKind.OWNER)
    assert owner_scope.intersects({1, 3})
    assert not owner_scope.intersects({2, 3})
    assert not owner_scope.intersects(set())
    assert UNRESTRICTED.intersects(set())
    assert not EMPTY.intersects({1})


def test_role_gate():
    authorize(LIBRARIAN, "delete_book")
    with pytest.raises(Forbidden):
        authorize(USER, "delete_book")
    with pytest.raises(Forbidden):
        authorize(LIBRARIAN, "manage_settings")
    with pytest.raises(KeyError):
        authorize(ADMIN, "launch_rockets")


def test_out_of_scope_resources_look_missing():
    with pytest.raises(NotFound):
        ensure_in_scope(LIBRARIAN, 3, ScopeKind.READ, "Book")
    # Visible but not owned: the librarian already knows it exists
    with pytest.raises(Forbidden):
        ensure_in_scope(LIBRARIAN, 2, ScopeKind.OWNER, "Library")
    ensure_in_scope(LIBRARIAN, 1, ScopeKind.OWNER, "Library")
    ensure_in_scope(ADMIN, 42, ScopeKind.OWNER, "Library")


def test_library_writable_is_forbidden_when_named_explicitly():
    ensure_library_writable(LIBRARIAN, 2)
    with pytest.raises(Forbidden):
        ensure_library_writable(LIBRARIAN, 3)
    with pytest.raises(Forbidden):
        ensure_library_writable(LIBRARIAN, 2, ScopeKind.OWNER)


def test_actor_checks():
    # Users only see their own records
    ensure_actor(USER, 1, USER.id, Actor.BORROWER, "Request")
    with pytest.raises(NotFound):
        ensure_actor(USER, 1, 99, Actor.BORROWER, "Request")
    with pytest.raises(Forbidden):
        ensure_actor(USER, 1, USER.id, Actor.MANAGER, "Request")
    # Librarians manage records in their libraries but do not act for borrowers
    ensure_actor(LIBRARIAN, 2, 99, Actor.MANAGER, "Loan")
    with pytest.raises(Forbidden):
        ensure_actor(LIBRARIAN, 2, 99, Actor.BORROWER, "Loan")
    with pytest.raises(NotFound):
        ensure_actor(LIBRARIAN, 3, 99, Actor.MANAGER, "Loan")
    ensure_actor(ADMIN, 3, 99, Actor.BORROWER, "Loan")

import math

import pytest

from bookhub.core.errors import NotFound, ValidationFailed
from bookhub.models.book import Book
from bookhub.services.book_store import BookFilters, TenantBookStore
from bookhub.services.image_storage import UploadedImage
from conftest import book_payload


def _cover(n=1):
    return UploadedImage(public_url=f"https://images.example.com/cover-{n}.png", public_id=f"cover-{n}")


@pytest.fixture
def owner(make_user):
    return make_user("owner")


@pytest.fixture
def store(db_session, owner):
    return TenantBookStore(db_session, owner.organization_id)


@pytest.mark.parametrize("total, page", [(0, 1), (7, 1), (10, 1), (23, 1), (23, 3), (23, 4), (20, 2)])
def test_page_sizes_follow_the_formula(store, owner, total, page):
    for n in range(total):
        store.create(owner.id, book_payload(title=f"Book {n:03d}"), _cover(n))

    books, page_info = store.list(BookFilters(), page=page, page_size=10)

    assert len(books) == min(10, max(0, total - (page - 1) * 10))
    assert page_info == {
        "total": total,
        "page": page,
        "limit": 10,
        "total_pages": math.ceil(total / 10),
    }


def test_sort_override_and_stable_tie_break(store, owner):
    for title in ["Gamma", "Alpha", "Beta"]:
        store.create(owner.id, book_payload(title=title, selling_price=10.0), _cover())

    books, _ = store.list(BookFilters(), sort_by="title", order="asc")
    assert [book.title for book in books] == ["Alpha", "Beta", "Gamma"]

    # Equal prices fall back to id in the requested direction
    books, _ = store.list(BookFilters(), sort_by="selling_price", order="desc")
    assert [book.title for book in books] == ["Beta", "Alpha", "Gamma"]

    with pytest.raises(ValidationFailed):
        store.list(BookFilters(), sort_by="organization_id")


def test_create_ignores_tenant_fields_in_input(store, owner, make_user):
    intruder = make_user("intruder")
    book = store.create(
        owner.id,
        {**book_payload(), "organization_id": intruder.organization_id},
        _cover(),
    )
    assert book.organization_id == owner.organization_id


def test_other_tenant_handle_cannot_reach_books(db_session, store, owner, make_user):
    book = store.create(owner.id, book_payload(), _cover())
    other = TenantBookStore(db_session, make_user("other").organization_id)

    with pytest.raises(NotFound):
        other.get(book.id)
    with pytest.raises(NotFound):
        other.update(book.id, {"title": "Taken over"})
    with pytest.raises(NotFound):
        other.delete(book.id)
    assert other.list(BookFilters())[1]["total"] == 0

    db_session.expire_all()
    assert db_session.get(Book, book.id).title == "The Silent Library"


def test_update_returns_replaced_image(store, owner):
    book = store.create(owner.id, book_payload(), _cover(1))

    updated, replaced = store.update(book.id, {"quantity": 2})
    assert updated.quantity == 2
    assert replaced is None

    updated, replaced = store.update(book.id, {}, cover=_cover(2))
    assert updated.cover_image_public_id == "cover-2"
    assert replaced == "cover-1"


def test_delete_returns_removed_book(store, owner):
    book = store.create(owner.id, book_payload(), _cover(7))
    removed = store.delete(book.id)
    assert removed.cover_image_public_id == "cover-7"
    with pytest.raises(NotFound):
        store.get(book.id)


def test_create_enforces_discount_invariant(store, owner):
    with pytest.raises(ValidationFailed) as exc_info:
        store.create(owner.id, book_payload(discount_price=3.0), _cover())
    assert "discount_price" in exc_info.value.errors

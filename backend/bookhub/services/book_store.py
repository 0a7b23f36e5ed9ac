"""
Tenant-scoped access to books.

``TenantBookStore`` is a handle bound to one organization. Every query it
issues starts from ``query()``, which always filters on that organization, so
no method can reach another tenant's rows. A book that exists only in another
organization is reported exactly like a missing one.
"""
from dataclasses import dataclass
import logging
import math
from typing import Any, Dict, List, Mapping, Optional, Tuple, TypedDict

from sqlalchemy import func
from sqlalchemy.orm import Query, Session, joinedload

from bookhub.core.book_rules import DISCOUNT_FIELDS, discount_window_errors
from bookhub.core.errors import NotFound, ValidationFailed
from bookhub.models.book import Book
from bookhub.services.image_storage import UploadedImage


logger = logging.getLogger(__name__)

# Columns a caller may set; ownership and tenancy are stamped by the store
WRITABLE_FIELDS = (
    "title",
    "genre",
    "description",
    "author_name",
    "selling_price",
    "buying_price",
    "discount_price",
    "discount_start_date",
    "discount_end_date",
    "quantity",
)

# Largest id a signed 64-bit INTEGER column can hold
MAX_BOOK_ID = 2 ** 63 - 1

SORTABLE_FIELDS = {
    "created_at": Book.created_at,
    "updated_at": Book.updated_at,
    "title": Book.title,
    "author_name": Book.author_name,
    "selling_price": Book.selling_price,
    "quantity": Book.quantity,
}


@dataclass
class BookFilters:
    title: Optional[str] = None
    genre: Optional[str] = None
    author: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    in_stock: Optional[bool] = None


class PageInfo(TypedDict):
    total: int
    page: int
    limit: int
    total_pages: int


def _contains(column, text: str):
    """Case-insensitive, unanchored substring match with LIKE wildcards escaped."""
    escaped = text.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return func.lower(column).like(f"%{escaped}%", escape="\\")


class TenantBookStore:
    def __init__(self, db: Session, organization_id: int):
        self.db = db
        self.organization_id = organization_id

    def query(self, *entities) -> Query:
        """Base query over this organization's books."""
        return self.db.query(*(entities or (Book,))).filter(Book.organization_id == self.organization_id)

    def create(self, added_by_id: int, fields: Mapping[str, Any], cover: UploadedImage) -> Book:
        values = {name: fields.get(name) for name in WRITABLE_FIELDS}
        errors = discount_window_errors(values)
        if errors:
            raise ValidationFailed(errors)

        book = Book(
            **values,
            cover_image_url=cover.public_url,
            cover_image_public_id=cover.public_id,
            added_by_id=added_by_id,
            organization_id=self.organization_id,
        )
        self.db.add(book)
        self.db.commit()
        self.db.refresh(book)
        logger.info("Created book id=%s organization=%s", book.id, self.organization_id)
        return book

    def get(self, book_id: int) -> Book:
        if not 0 < book_id <= MAX_BOOK_ID:
            raise NotFound("Book not found")
        book = (
            self.query()
            .options(joinedload(Book.added_by))
            .filter(Book.id == book_id)
            .first()
        )
        if not book:
            raise NotFound("Book not found")
        return book

    def list(
        self,
        filters: BookFilters,
        page: int = 1,
        page_size: int = 10,
        sort_by: str = "created_at",
        order: str = "desc",
    ) -> Tuple[List[Book], PageInfo]:
        if sort_by not in SORTABLE_FIELDS:
            raise ValidationFailed({"sort_by": f"Sort field must be one of: {', '.join(sorted(SORTABLE_FIELDS))}"})
        if order not in {"asc", "desc"}:
            raise ValidationFailed({"order": "Order must be 'asc' or 'desc'"})

        query = self.query()
        if filters.title and filters.title.strip():
            query = query.filter(_contains(Book.title, filters.title.strip()))
        if filters.genre:
            query = query.filter(Book.genre == filters.genre)
        if filters.author and filters.author.strip():
            query = query.filter(_contains(Book.author_name, filters.author.strip()))
        if filters.min_price is not None:
            query = query.filter(Book.selling_price >= filters.min_price)
        if filters.max_price is not None:
            query = query.filter(Book.selling_price <= filters.max_price)
        if filters.in_stock is not None:
            query = query.filter(Book.quantity > 0 if filters.in_stock else Book.quantity == 0)

        total = query.count()

        offset = (page - 1) * page_size
        if offset >= total:
            # Past the last page; the offset may not even fit the column type
            books = []
        else:
            column = SORTABLE_FIELDS[sort_by]
            # id breaks ties so pages never overlap
            ordering = (column.asc(), Book.id.asc()) if order == "asc" else (column.desc(), Book.id.desc())
            books = (
                query.options(joinedload(Book.added_by))
                .order_by(*ordering)
                .offset(offset)
                .limit(page_size)
                .all()
            )
        logger.info(
            "list_books organization=%s filters=%s page=%s total=%s",
            self.organization_id, filters, page, total,
        )
        return books, PageInfo(
            total=total,
            page=page,
            limit=page_size,
            total_pages=math.ceil(total / page_size),
        )

    def check_update(self, book_id: int, changes: Mapping[str, Any]) -> Book:
        """Return the target book if ``changes`` can be applied to it."""
        book = self.get(book_id)
        merged = {
            name: changes[name] if name in changes else getattr(book, name)
            for name in DISCOUNT_FIELDS
        }
        errors = discount_window_errors(merged)
        if errors:
            raise ValidationFailed(errors)
        return book

    def update(
        self,
        book_id: int,
        changes: Mapping[str, Any],
        cover: Optional[UploadedImage] = None,
    ) -> Tuple[Book, Optional[str]]:
        """
        Apply a partial update to a book of this organization.

        Only keys present in ``changes`` are written. The discount invariant is
        checked on the record as it will look after the update, so a patch may
        carry a single discount field when the others are already stored.

        Returns:
            The refreshed book and, when ``cover`` replaced an image, the public
            id of the previous image so the caller can release it.

        Raises:
            NotFound: The book is not in this organization (or vanished mid-update)
            ValidationFailed: The merged record breaks the discount invariant
        """
        book = self.check_update(book_id, changes)
        values: Dict[str, Any] = {name: changes[name] for name in WRITABLE_FIELDS if name in changes}

        replaced_public_id = None
        if cover is not None:
            replaced_public_id = book.cover_image_public_id
            values["cover_image_url"] = cover.public_url
            values["cover_image_public_id"] = cover.public_id

        if values:
            # Conditional write: the tenant filter is part of the UPDATE itself
            updated = self.query().filter(Book.id == book_id).update(values, synchronize_session=False)
            if not updated:
                self.db.rollback()
                raise NotFound("Book not found")
            self.db.commit()
            self.db.refresh(book)
            logger.info("Updated book id=%s fields=%s", book_id, sorted(values))
        return book, replaced_public_id

    def delete(self, book_id: int) -> Book:
        """Remove a book of this organization and return the detached row."""
        book = self.get(book_id)
        deleted = self.query().filter(Book.id == book_id).delete(synchronize_session=False)
        if not deleted:
            self.db.rollback()
            raise NotFound("Book not found")
        self.db.expunge(book)
        self.db.commit()
        logger.info("Deleted book id=%s organization=%s", book_id, self.organization_id)
        return book

"""
Dashboard statistics for one organization's inventory.

All figures are computed through the tenant-scoped store, so they only ever
cover the caller's organization.
"""
from typing import Dict, List, Optional, TypedDict

from sqlalchemy import case, func
from sqlalchemy.orm import joinedload

from bookhub.models.book import Book
from bookhub.services.book_store import TenantBookStore


RECENT_BOOKS_LIMIT = 5


class RecentBookData(TypedDict):
    """Structure for a recently added book."""
    id: int
    title: str
    author_name: str
    created_at: str
    cover_image_url: str
    added_by_name: Optional[str]


class BookStatsData(TypedDict):
    """Structure for the dashboard summary."""
    total_books: int
    books_in_stock: int
    books_out_of_stock: int
    books_by_genre: Dict[str, int]
    total_inventory_value: float
    recent_books: List[RecentBookData]


def get_book_stats(books: TenantBookStore) -> BookStatsData:
    """
    Summarize an organization's books.

    Args:
        books: Store bound to the organization being reported on

    Returns:
        Counts, per-genre totals, inventory value (buying price times quantity)
        and the most recently created books. An empty inventory yields zeros.
    """
    total, in_stock, out_of_stock, inventory_value = books.query(
        func.count(Book.id),
        func.coalesce(func.sum(case((Book.quantity > 0, 1), else_=0)), 0),
        func.coalesce(func.sum(case((Book.quantity == 0, 1), else_=0)), 0),
        func.coalesce(func.sum(Book.buying_price * Book.quantity), 0),
    ).one()

    genre_rows = books.query(Book.genre, func.count(Book.id)).group_by(Book.genre).all()

    recent = (
        books.query()
        .options(joinedload(Book.added_by))
        .order_by(Book.created_at.desc(), Book.id.desc())
        .limit(RECENT_BOOKS_LIMIT)
        .all()
    )

    return BookStatsData(
        total_books=int(total or 0),
        books_in_stock=int(in_stock or 0),
        books_out_of_stock=int(out_of_stock or 0),
        books_by_genre={genre: int(count) for genre, count in genre_rows},
        total_inventory_value=float(inventory_value or 0),
        recent_books=[
            RecentBookData(
                id=book.id,
                title=book.title,
                author_name=book.author_name,
                created_at=book.created_at.isoformat(),
                cover_image_url=book.cover_image_url,
                added_by_name=book.added_by.name if book.added_by else None,
            )
            for book in recent
        ],
    )

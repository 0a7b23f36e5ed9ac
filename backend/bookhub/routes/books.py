from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, UploadFile, status
from pydantic import BaseModel, Field, field_validator

from bookhub.core.book_rules import discount_window_errors
from bookhub.core.config import Settings, get_settings
from bookhub.core.deps import get_book_store, get_current_user, get_image_storage
from bookhub.core.errors import EmptyBody, ValidationFailed
from bookhub.core.validation import load_json_field, parse_payload
from bookhub.models.book import Genre
from bookhub.models.user import User
from bookhub.services.book_stats_service import get_book_stats
from bookhub.services.book_store import BookFilters, TenantBookStore
from bookhub.services.image_storage import ImageStorage, release_image, upload_cover_image


router = APIRouter()

_REQUIRED_ON_UPDATE = (
    "title",
    "genre",
    "description",
    "author_name",
    "selling_price",
    "buying_price",
    "quantity",
)


def _to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Stored datetimes are naive UTC
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _release_cover(storage: ImageStorage, public_id: Optional[str], settings: Settings) -> None:
    release_image(
        storage,
        public_id,
        attempts=settings.image_release_attempts,
        backoff_seconds=settings.image_release_backoff_seconds,
    )


class BookCreate(BaseModel):
    title: str = Field(min_length=3, max_length=100)
    genre: Genre
    description: str = Field(min_length=10, max_length=500)
    author_name: str = Field(min_length=3, max_length=50)
    selling_price: float = Field(ge=0)
    buying_price: float = Field(ge=0)
    discount_price: Optional[float] = Field(None, ge=0)
    discount_start_date: Optional[datetime] = None
    discount_end_date: Optional[datetime] = None
    quantity: int = Field(ge=0)

    @field_validator("discount_start_date", "discount_end_date")
    @classmethod
    def normalize_dates(cls, value):
        return _to_naive_utc(value)

    class Config:
        str_strip_whitespace = True
        use_enum_values = True


class BookUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=3, max_length=100)
    genre: Optional[Genre] = None
    description: Optional[str] = Field(None, min_length=10, max_length=500)
    author_name: Optional[str] = Field(None, min_length=3, max_length=50)
    selling_price: Optional[float] = Field(None, ge=0)
    buying_price: Optional[float] = Field(None, ge=0)
    # Discount fields accept null so a discount can be cleared
    discount_price: Optional[float] = Field(None, ge=0)
    discount_start_date: Optional[datetime] = None
    discount_end_date: Optional[datetime] = None
    quantity: Optional[int] = Field(None, ge=0)

    @field_validator("discount_start_date", "discount_end_date")
    @classmethod
    def normalize_dates(cls, value):
        return _to_naive_utc(value)

    @field_validator(*_REQUIRED_ON_UPDATE, mode="before")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("Field cannot be null")
        return value

    class Config:
        str_strip_whitespace = True
        use_enum_values = True


class AddedByOut(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class BookOut(BaseModel):
    id: int
    title: str
    genre: str
    description: str
    author_name: str
    cover_image_url: str
    selling_price: float
    buying_price: float
    discount_price: Optional[float] = None
    discount_start_date: Optional[datetime] = None
    discount_end_date: Optional[datetime] = None
    quantity: int
    added_by: Optional[AddedByOut] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BookResponse(BaseModel):
    success: bool = True
    message: str
    data: BookOut


class PageInfoOut(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class BookListResponse(BaseModel):
    success: bool = True
    message: str
    data: List[BookOut]
    pagination: PageInfoOut


class BookStatsResponse(BaseModel):
    success: bool = True
    message: str
    data: Dict[str, Any]


class MessageResponse(BaseModel):
    success: bool = True
    message: str


@router.post("", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
def create_book(
    data: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    user: User = Depends(get_current_user),
    books: TenantBookStore = Depends(get_book_store),
    storage: ImageStorage = Depends(get_image_storage),
    settings: Settings = Depends(get_settings),
):
    payload = parse_payload(BookCreate, load_json_field(data)).model_dump()
    errors = discount_window_errors(payload)
    if errors:
        raise ValidationFailed(errors)
    if image is None:
        raise ValidationFailed({"image": "Cover image is required"})

    cover = upload_cover_image(image, storage, settings)
    try:
        book = books.create(user.id, payload, cover)
    except Exception:
        _release_cover(storage, cover.public_id, settings)
        raise
    return BookResponse(message="Book created successfully", data=BookOut.model_validate(book))


@router.get("", response_model=BookListResponse)
def list_books(
    title: Optional[str] = Query(None, description="Case-insensitive title search"),
    genre: Optional[Genre] = Query(None),
    author: Optional[str] = Query(None, description="Case-insensitive author search"),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    in_stock: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    sort_by: str = Query("created_at"),
    order: str = Query("desc"),
    books: TenantBookStore = Depends(get_book_store),
    settings: Settings = Depends(get_settings),
):
    filters = BookFilters(
        title=title,
        genre=genre.value if genre else None,
        author=author,
        min_price=min_price,
        max_price=max_price,
        in_stock=in_stock,
    )
    items, page_info = books.list(
        filters,
        page=page,
        page_size=settings.books_page_size,
        sort_by=sort_by,
        order=order,
    )
    return BookListResponse(
        message="Books retrieved successfully",
        data=[BookOut.model_validate(book) for book in items],
        pagination=PageInfoOut(**page_info),
    )


@router.get("/stats", response_model=BookStatsResponse)
def book_stats(books: TenantBookStore = Depends(get_book_store)):
    return BookStatsResponse(message="Book statistics retrieved successfully", data=get_book_stats(books))


@router.get("/{book_id}", response_model=BookResponse)
def get_book(book_id: int, books: TenantBookStore = Depends(get_book_store)):
    book = books.get(book_id)
    return BookResponse(message="Book retrieved successfully", data=BookOut.model_validate(book))


@router.patch("/{book_id}", response_model=BookResponse)
def update_book(
    book_id: int,
    background_tasks: BackgroundTasks,
    data: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    books: TenantBookStore = Depends(get_book_store),
    storage: ImageStorage = Depends(get_image_storage),
    settings: Settings = Depends(get_settings),
):
    raw = load_json_field(data)
    if not raw and image is None:
        raise EmptyBody()
    changes = parse_payload(BookUpdate, raw).model_dump(exclude_unset=True) if raw else {}
    if not changes and image is None:
        # Only unknown keys were sent, there is nothing to apply
        raise EmptyBody()

    # Reject unknown or invalid targets before anything is uploaded
    books.check_update(book_id, changes)

    cover = upload_cover_image(image, storage, settings) if image is not None else None
    try:
        book, replaced_public_id = books.update(book_id, changes, cover)
    except Exception:
        if cover is not None:
            _release_cover(storage, cover.public_id, settings)
        raise

    if replaced_public_id:
        background_tasks.add_task(_release_cover, storage, replaced_public_id, settings)
    return BookResponse(message="Book updated successfully", data=BookOut.model_validate(book))


@router.delete("/{book_id}", response_model=MessageResponse)
def delete_book(
    book_id: int,
    background_tasks: BackgroundTasks,
    books: TenantBookStore = Depends(get_book_store),
    storage: ImageStorage = Depends(get_image_storage),
    settings: Settings = Depends(get_settings),
):
    book = books.delete(book_id)
    background_tasks.add_task(_release_cover, storage, book.cover_image_public_id, settings)
    return MessageResponse(message="Book deleted successfully")

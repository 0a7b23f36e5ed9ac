from enum import Enum
from datetime import datetime

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, CheckConstraint
from sqlalchemy.orm import relationship

from bookhub.models.base import Base


class Genre(str, Enum):
    fiction = "Fiction"
    non_fiction = "Non-Fiction"


class Book(Base):
    __tablename__ = "books"
    __table_args__ = (
        CheckConstraint("selling_price >= 0", name="ck_books_selling_price"),
        CheckConstraint("buying_price >= 0", name="ck_books_buying_price"),
        CheckConstraint("discount_price IS NULL OR discount_price >= 0", name="ck_books_discount_price"),
        CheckConstraint("quantity >= 0", name="ck_books_quantity"),
    )

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(100), nullable=False, index=True)
    genre = Column(String(20), nullable=False, index=True)
    description = Column(String(500), nullable=False)
    author_name = Column(String(50), nullable=False, index=True)
    cover_image_url = Column(String(500), nullable=False)
    cover_image_public_id = Column(String(255), nullable=True)  # Image host handle, used for release

    selling_price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    buying_price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    discount_price = Column(Numeric(10, 2, asdecimal=False), nullable=True)
    discount_start_date = Column(DateTime, nullable=True)
    discount_end_date = Column(DateTime, nullable=True)
    quantity = Column(Integer, nullable=False, default=0)

    added_by_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    organization_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    added_by = relationship("User", foreign_keys=[added_by_id])

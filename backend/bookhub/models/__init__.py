from .base import Base
from .user import User
from .book import Book, Genre

__all__ = ["Base", "User", "Book", "Genre"]

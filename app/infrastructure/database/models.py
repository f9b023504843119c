"""SQLAlchemy database models."""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, relationship


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------
class AuthorModel(Base):
    __tablename__ = "authors"

    id = Column(String(64), primary_key=True, default=_new_id)
    name = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class CategoryModel(Base):
    __tablename__ = "categories"

    id = Column(String(64), primary_key=True, default=_new_id)
    name = Column(String(100), nullable=False)
    slug = Column(String(100), nullable=False, unique=True, index=True)
    parent_id = Column(String(64), ForeignKey("categories.id"), nullable=True)


class BookAuthorModel(Base):
    __tablename__ = "book_authors"

    book_id = Column(String(64), ForeignKey("books.id", ondelete="CASCADE"), primary_key=True)
    author_id = Column(String(64), ForeignKey("authors.id", ondelete="CASCADE"), primary_key=True)
    position = Column(Integer, default=0, nullable=False)

    author = relationship("AuthorModel", lazy="selectin")


class BookCategoryModel(Base):
    __tablename__ = "book_categories"

    book_id = Column(String(64), ForeignKey("books.id", ondelete="CASCADE"), primary_key=True)
    category_id = Column(
        String(64), ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True
    )

    category = relationship("CategoryModel", lazy="selectin")


class BookModel(Base):
    __tablename__ = "books"

    id = Column(String(64), primary_key=True, default=_new_id)
    isbn = Column(String(20), nullable=True, unique=True)
    title = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    cover_url = Column(String(512), nullable=True)
    has_paper = Column(Boolean, default=False, nullable=False)
    has_ebook = Column(Boolean, default=False, nullable=False)
    has_audiobook = Column(Boolean, default=False, nullable=False)
    avg_rating = Column(Numeric(3, 2), default=0, nullable=False)
    ratings_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    authors = relationship(
        "BookAuthorModel",
        lazy="selectin",
        order_by="BookAuthorModel.position",
        cascade="all, delete-orphan",
    )
    categories = relationship("BookCategoryModel", lazy="selectin", cascade="all, delete-orphan")
    # available offers only
    offers = relationship(
        "OfferModel",
        lazy="selectin",
        primaryjoin="and_(BookModel.id == OfferModel.book_id, OfferModel.is_available == True)",
        viewonly=True,
    )

    __table_args__ = (Index("ix_books_popularity", "ratings_count", "avg_rating"),)


class OfferModel(Base):
    __tablename__ = "offers"

    id = Column(String(64), primary_key=True, default=_new_id)
    book_id = Column(String(64), ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    store = Column(String(100), nullable=False)
    format = Column(String(20), nullable=True)
    price = Column(Float, nullable=True)
    url = Column(String(1024), nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


# ---------------------------------------------------------------------------
# User activity
# ---------------------------------------------------------------------------
class UserBookModel(Base):
    """A bookshelf entry: one user, one book, status plus optional rating."""

    __tablename__ = "user_books"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    book_id = Column(String(64), ForeignKey("books.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), nullable=False, default="want_to_read")
    rating = Column(Integer, nullable=True)
    rated_at = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    book = relationship("BookModel", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="uq_user_book"),
        CheckConstraint("rating IS NULL OR rating BETWEEN 1 AND 5", name="ck_user_book_rating"),
        Index("ix_user_books_user_status", "user_id", "status"),
    )


class PurchaseModel(Base):
    __tablename__ = "purchases"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    book_id = Column(String(64), ForeignKey("books.id", ondelete="SET NULL"), nullable=True)
    format = Column(String(20), nullable=True)
    store = Column(String(100), nullable=True)
    price = Column(Float, nullable=True)
    purchased_at = Column(DateTime, default=datetime.utcnow, nullable=False)

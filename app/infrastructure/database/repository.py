"""Repository implementations."""

from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.entities import (
    AuthorRef,
    BookFormats,
    CategoryRef,
    LibraryRecord,
    ReadingStatus,
    RecommendedBook,
)
from app.domain.repositories import ICatalogRepository, ILibraryRepository, IPurchaseRepository
from app.infrastructure.database.models import (
    BookCategoryModel,
    BookModel,
    PurchaseModel,
    UserBookModel,
)


def _formats(model: BookModel) -> BookFormats:
    return BookFormats(
        paper=bool(model.has_paper),
        ebook=bool(model.has_ebook),
        audiobook=bool(model.has_audiobook),
    )


# ---------------------------------------------------------------------------
# Catalog Repository
# ---------------------------------------------------------------------------
class CatalogRepository(ICatalogRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, book_id: str) -> Optional[RecommendedBook]:
        result = await self.session.execute(select(BookModel).where(BookModel.id == book_id))
        db_book = result.scalar_one_or_none()
        return self._to_entity(db_book) if db_book else None

    async def list_candidates(
        self,
        limit: int,
        format: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> list[RecommendedBook]:
        stmt = select(BookModel)
        if format:
            stmt = stmt.where(getattr(BookModel, f"has_{format}").is_(True))
        if category_id:
            stmt = stmt.where(BookModel.categories.any(BookCategoryModel.category_id == category_id))
        stmt = stmt.order_by(BookModel.ratings_count.desc(), BookModel.avg_rating.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return [self._to_entity(book) for book in result.scalars().all()]

    async def list_popular(self, limit: int) -> list[RecommendedBook]:
        return await self.list_candidates(limit)

    @staticmethod
    def _to_entity(model: BookModel) -> RecommendedBook:
        return RecommendedBook(
            id=model.id,
            title=model.title,
            authors=[link.author.name for link in model.authors],
            author_ids=[link.author_id for link in model.authors],
            categories=[link.category.name for link in model.categories],
            category_ids=[link.category_id for link in model.categories],
            formats=_formats(model),
            avg_rating=float(model.avg_rating or 0),
            ratings_count=model.ratings_count or 0,
            has_offers=len(model.offers) > 0,
            isbn=model.isbn,
            cover_url=model.cover_url,
            description=model.description,
        )


# ---------------------------------------------------------------------------
# Library (bookshelf) Repository
# ---------------------------------------------------------------------------
class LibraryRepository(ILibraryRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user_records(self, user_id: UUID) -> list[LibraryRecord]:
        result = await self.session.execute(
            select(UserBookModel)
            .where(UserBookModel.user_id == user_id)
            .order_by(UserBookModel.created_at, UserBookModel.id)
        )
        return [self._to_entity(row) for row in result.scalars().all()]

    async def get_read_book_ids(self, user_id: UUID) -> set[str]:
        result = await self.session.execute(
            select(UserBookModel.book_id).where(
                UserBookModel.user_id == user_id,
                func.lower(UserBookModel.status) == ReadingStatus.READ.value,
            )
        )
        return set(result.scalars().all())

    async def get_data_version(self, user_id: UUID) -> str:
        shelf = await self.session.execute(
            select(func.count(UserBookModel.id), func.max(UserBookModel.updated_at)).where(
                UserBookModel.user_id == user_id
            )
        )
        shelf_count, last_update = shelf.one()
        purchases = await self.session.execute(
            select(func.count(PurchaseModel.id)).where(PurchaseModel.user_id == user_id)
        )
        stamp = last_update.isoformat() if last_update else "-"
        return f"{shelf_count}:{stamp}:{purchases.scalar_one()}"

    @staticmethod
    def _to_entity(model: UserBookModel) -> LibraryRecord:
        book = model.book
        return LibraryRecord(
            book_id=model.book_id,
            status=model.status,
            rating=model.rating,
            rated_at=model.rated_at,
            updated_at=model.updated_at,
            created_at=model.created_at,
            finished_at=model.finished_at,
            categories=[
                CategoryRef(
                    id=link.category_id,
                    name=link.category.name,
                    slug=link.category.slug,
                    parent_id=link.category.parent_id,
                )
                for link in book.categories
            ],
            authors=[AuthorRef(id=link.author_id, name=link.author.name) for link in book.authors],
            formats=_formats(book),
        )


# ---------------------------------------------------------------------------
# Purchase Repository
# ---------------------------------------------------------------------------
class PurchaseRepository(IPurchaseRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_format_counts(self, user_id: UUID) -> dict[str, int]:
        result = await self.session.execute(
            select(PurchaseModel.format, func.count(PurchaseModel.id))
            .where(PurchaseModel.user_id == user_id, PurchaseModel.format.is_not(None))
            .group_by(PurchaseModel.format)
        )
        return {fmt: count for fmt, count in result.all()}

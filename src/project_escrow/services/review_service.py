"""Review Service: worker reviews and the public rating aggregate."""

from __future__ import annotations

from typing import TYPE_CHECKING

from project_escrow.infrastructure.database.orm_models import WorkerReview
from project_escrow.infrastructure.database.repositories import (
    ReviewRepository,
    UserRepository,
)
from project_escrow.logging_config import get_logger

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


class ReviewService:
    """Records reviews and keeps each worker's rating in sync with them."""

    def __init__(self, session: AsyncSession) -> None:
        self._reviews = ReviewRepository(session)
        self._users = UserRepository(session)

    async def add_review(
        self,
        worker_id: uuid.UUID,
        client_id: uuid.UUID,
        project_id: uuid.UUID,
        rating: int,
        review: str = "",
    ) -> WorkerReview:
        """Store a review, then recompute the worker's aggregate."""
        created = await self._reviews.create(
            WorkerReview(
                worker_id=worker_id,
                client_id=client_id,
                escrow_project_id=project_id,
                rating=rating,
                review=review,
            )
        )
        await self.recompute_worker_rating(worker_id)
        return created

    async def recompute_worker_rating(self, worker_id: uuid.UUID) -> tuple[float, int]:
        """Set the worker's rating to the mean of all their reviews.

        Reads the full review set every time, so the stored value never
        drifts the way an incrementally updated average can.
        """
        ratings = await self._reviews.ratings_for_worker(worker_id)
        count = len(ratings)
        mean = sum(ratings) / count if count else 0.0

        worker = await self._users.get_by_id(worker_id)
        if worker is None:
            logger.warning("review.worker_missing", worker_id=str(worker_id))
            return mean, count

        await self._users.update_rating(worker, mean, count)
        logger.info("review.rating_recomputed", worker_id=str(worker_id), rating=mean, count=count)
        return mean, count

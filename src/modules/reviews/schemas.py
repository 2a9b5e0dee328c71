"""Review schemas."""

import datetime as dt
from typing import Annotated

from pydantic import Field, StringConstraints

from src.shared.schemas import ApiModel, Page, UtcDateTime


class ReviewCreate(ApiModel):
    booking_id: str = Field(..., min_length=1, max_length=26)
    rating: int = Field(..., ge=1, le=5)
    title: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
    content: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=2000)]
    visit_date: dt.date | None = None
    access_code: str | None = Field(default=None, max_length=16)


class ReviewPublic(ApiModel):
    review_id: str = Field(serialization_alias="id")
    booking_id: str
    clinic_id: str
    rating: int
    title: str
    content: str
    visit_date: dt.date | None = None
    helpful_count: int
    created_at: UtcDateTime


class HelpfulResult(ApiModel):
    review_id: str = Field(serialization_alias="id")
    helpful_count: int


class ReviewEligibility(ApiModel):
    can_review: bool


class ReviewStats(ApiModel):
    average_rating: float
    total_reviews: int
    rating_distribution: dict[int, int]


class ClinicReviews(ApiModel):
    reviews: Page[ReviewPublic]
    stats: ReviewStats

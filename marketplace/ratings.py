"""Review submission and the shop rating derived from it.

The rating stored on a shop is the mean of all its review ratings, rounded
half-up to one decimal (0 with no reviews). It is written back every time a
review is added. Reading the reviews and writing the shop are two separate
storage operations: two reviews landing at the same moment can leave the
shop with the rating computed by whichever write finishes last, which the
next review corrects.
"""

from __future__ import annotations

from collections import namedtuple
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from bson import ObjectId
from flask import current_app
from pymongo.errors import PyMongoError

from .clock import utcnow
from .errors import RatingUpdateError, ValidationError
from .models import Review, Shop


RatingSummary = namedtuple("RatingSummary", ["rating", "total_reviews"])

MIN_RATING = 1
MAX_RATING = 5


def round_rating(total: Any, count: int) -> float:
    if not count:
        return 0.0
    mean = Decimal(str(total)) / Decimal(count)
    return float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def summarize(ratings: Iterable[int]) -> RatingSummary:
    values = list(ratings)
    return RatingSummary(round_rating(sum(values), len(values)), len(values))


def parse_rating(raw: Any) -> int:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError("Rating is required")
    if isinstance(raw, bool):
        raise ValidationError("Rating must be a whole number between 1 and 5")
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, float) and raw.is_integer():
        value = int(raw)
    elif isinstance(raw, str) and raw.strip().lstrip("-").isdecimal():
        value = int(raw.strip())
    else:
        raise ValidationError("Rating must be a whole number between 1 and 5")
    if not MIN_RATING <= value <= MAX_RATING:
        raise ValidationError("Rating must be between 1 and 5")
    return value


def summarize_reviews(shop_id: ObjectId) -> RatingSummary:
    pipeline = [
        {"$match": {"shop_id": shop_id}},
        {"$group": {"_id": "$shop_id", "total": {"$sum": "$rating"}, "count": {"$sum": 1}}},
    ]
    result = list(Review.collection().aggregate(pipeline))
    if not result:
        return RatingSummary(0.0, 0)
    count = int(result[0].get("count") or 0)
    return RatingSummary(round_rating(result[0].get("total") or 0, count), count)


def refresh_shop_rating(shop: Shop) -> RatingSummary:
    """Recompute the shop's rating from all of its reviews and store it."""
    try:
        summary = summarize_reviews(shop.mongo_id)
        Shop.collection().update_one(
            {"_id": shop.mongo_id},
            {"$set": {"rating": summary.rating, "review_count": summary.total_reviews}},
        )
    except PyMongoError as exc:
        raise RatingUpdateError(f"Unable to refresh rating for shop {shop.id}") from exc
    return summary


def list_reviews(identifier: str) -> Tuple[List[Review], RatingSummary]:
    shop = Shop.resolve(identifier)
    reviews = Review.for_shop(shop.mongo_id)
    return reviews, summarize(review.rating for review in reviews)


def submit_review(identifier: str, payload: Mapping[str, Any]) -> Tuple[Review, Optional[RatingSummary]]:
    """Store a review, then refresh the shop rating.

    The review insert is acknowledged before the aggregate is read, so the new
    review is always counted. If the refresh fails the review is kept, the
    failure is logged and ``None`` is returned in place of the summary.
    """
    shop = Shop.resolve(identifier)
    customer_name = str(payload.get("customerName") or "").strip()
    comment = str(payload.get("comment") or "").strip()
    if not customer_name:
        raise ValidationError("Customer name is required")
    rating = parse_rating(payload.get("rating"))
    if not comment:
        raise ValidationError("Comment is required")
    doc = {
        "shop_id": shop.mongo_id,
        "customer_name": customer_name,
        "rating": rating,
        "comment": comment,
        "created_at": utcnow(),
    }
    result = Review.collection().insert_one(doc)
    doc["_id"] = result.inserted_id
    try:
        summary = refresh_shop_rating(shop)
    except RatingUpdateError:
        current_app.logger.exception(
            "Review %s stored but rating for shop %s is stale", result.inserted_id, shop.id
        )
        summary = None
    return Review(doc), summary

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional, Tuple

from bson import ObjectId
from flask import current_app
from pymongo import DESCENDING
from werkzeug.datastructures import FileStorage

from .clock import utcnow
from .errors import ValidationError
from .models import Offer, Shop, shop_names
from .uploads import save_upload


REQUIRED_OFFER_FIELDS = ("shopId", "title", "description", "startDate", "endDate", "discount")


def parse_offer_date(raw: Any) -> datetime:
    """Parse an ISO-8601 date or datetime into naive UTC."""
    text = str(raw or "").strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        value = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError("Invalid date format")
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def create_offer(payload: Mapping[str, Any], image: Optional[FileStorage] = None) -> Tuple[Offer, Shop]:
    missing = [field for field in REQUIRED_OFFER_FIELDS if not str(payload.get(field) or "").strip()]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    shop = Shop.resolve(str(payload.get("shopId")))
    start = parse_offer_date(payload.get("startDate"))
    end = parse_offer_date(payload.get("endDate"))
    if end < start:
        raise ValidationError("End date must be on or after start date")

    doc = {
        "shop_id": shop.mongo_id,
        "title": str(payload.get("title")).strip(),
        "description": str(payload.get("description")).strip(),
        "start_date": start,
        "end_date": end,
        "discount": str(payload.get("discount")).strip(),
        "image_url": save_upload(image, prefix="offer-"),
        "created_at": utcnow(),
    }
    result = Offer.collection().insert_one(doc)
    doc["_id"] = result.inserted_id
    current_app.logger.info(
        "Offer created: offerId=%s shopId=%s title=%s", result.inserted_id, shop.id, doc["title"]
    )
    return Offer(doc), shop


def active_offers(now: datetime, shop_id: Optional[ObjectId] = None) -> List[dict]:
    """Offers whose end date is not before ``now``, newest first, with their shop names."""
    query: dict = {"end_date": {"$gte": now}}
    if shop_id is not None:
        query["shop_id"] = shop_id
    docs = list(Offer.collection().find(query).sort("created_at", DESCENDING))
    names = shop_names(doc.get("shop_id") for doc in docs)
    return [Offer(doc).to_json(shop_name=names.get(doc.get("shop_id"))) for doc in docs]


def shop_offers(identifier: str) -> List[dict]:
    shop = Shop.resolve(identifier)
    return active_offers(utcnow(), shop_id=shop.mongo_id)


def delete_expired_offers(now: datetime) -> int:
    """Remove every offer whose end date is strictly before ``now``."""
    result = Offer.collection().delete_many({"end_date": {"$lt": now}})
    return result.deleted_count

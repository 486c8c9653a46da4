from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from flask import current_app
from pymongo import ASCENDING, DESCENDING
from pymongo.collection import Collection
from pymongo.database import Database
from werkzeug.security import check_password_hash

from .errors import NotFoundError


DEFAULT_SLUG = "shop"

_SLUG_DROP = re.compile(r"[^a-z0-9\s-]")
_SLUG_SEPARATORS = re.compile(r"[\s-]+")


def get_db() -> Database:
    return current_app.extensions["mongo_db"]


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if value in (None, ""):
        return None
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def isoformat(value: Any) -> Optional[str]:
    if not isinstance(value, datetime):
        return None
    # Stored datetimes are naive UTC.
    return value.isoformat() + "Z" if value.tzinfo is None else value.isoformat()


def slugify(name: str) -> str:
    """Turn a shop name into its URL slug.

    Apostrophes, punctuation and non-ASCII letters are dropped rather than
    transliterated, and whitespace/hyphen runs become a single ``-``::

        >>> slugify("Joe's Café #1")
        'joes-caf-1'
    """
    lowered = (name or "").strip().lower()
    kept = _SLUG_DROP.sub("", lowered)
    slug = _SLUG_SEPARATORS.sub("-", kept).strip("-")
    return slug or DEFAULT_SLUG


def unique_slug(
    collection: Collection, name: str, exclude_id: Optional[ObjectId] = None, legacy: bool = True
) -> str:
    """Return the slug for ``name``, suffixed with ``-2``, ``-3``... until no shop answers to it.

    With ``legacy`` set, slugs computed from the names of shops that have no
    stored slug count as taken too, so older links keep pointing at the older
    shop.
    """
    taken = set()
    if legacy:
        unstored: Dict[str, Any] = {"slug": {"$exists": False}}
        if exclude_id is not None:
            unstored["_id"] = {"$ne": exclude_id}
        taken = {slugify(doc.get("name", "")) for doc in collection.find(unstored, {"name": 1})}
    base = slugify(name)
    candidate = base
    suffix = 2
    while True:
        query: Dict[str, Any] = {"slug": candidate}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        if candidate not in taken and collection.find_one(query, {"_id": 1}) is None:
            return candidate
        candidate = f"{base}-{suffix}"
        suffix += 1


class MongoDocument:
    collection_name: str = ""

    def __init__(self, data: Optional[Dict[str, Any]] = None) -> None:
        self._data = data or {}

    def __getattr__(self, item: str) -> Any:
        if item.startswith("_"):
            raise AttributeError(item)
        if item == "id":
            _id = self._data.get("_id")
            return str(_id) if _id is not None else None
        value = self._data.get(item)
        if isinstance(value, ObjectId):
            return str(value)
        return value

    @classmethod
    def collection(cls) -> Collection:
        return get_db()[cls.collection_name]

    @classmethod
    def get(cls, doc_id: Any) -> Optional["MongoDocument"]:
        oid = to_object_id(doc_id)
        if not oid:
            return None
        doc = cls.collection().find_one({"_id": oid})
        return cls(doc) if doc else None

    @property
    def mongo_id(self) -> Optional[ObjectId]:
        return self._data.get("_id")

    def refresh_from_db(self) -> None:
        if not self.mongo_id:
            return
        fresh = self.collection().find_one({"_id": self.mongo_id})
        if fresh:
            self._data = fresh

    def to_dict(self) -> Dict[str, Any]:
        payload = {key: str(value) if isinstance(value, ObjectId) else value for key, value in self._data.items()}
        if "_id" in payload:
            payload["id"] = payload.pop("_id")
        return payload


class Shop(MongoDocument):
    collection_name = "shops"

    @staticmethod
    def normalize_email(email: str) -> str:
        return (email or "").strip().lower()

    @classmethod
    def get_by_email(cls, email: str) -> Optional["Shop"]:
        normalized = cls.normalize_email(email)
        if not normalized:
            return None
        doc = cls.collection().find_one({"email_lower": normalized})
        return cls(doc) if doc else None

    @classmethod
    def get_by_slug(cls, slug: str) -> Optional["Shop"]:
        if not slug:
            return None
        doc = cls.collection().find_one({"slug": slug})
        if doc:
            return cls(doc)
        # Shops registered before slugs were stored: derive from the current
        # name, oldest first, first match wins.
        legacy = cls.collection().find({"slug": {"$exists": False}}).sort("created_at", ASCENDING)
        for doc in legacy:
            if slugify(doc.get("name", "")) == slug:
                return cls(doc)
        return None

    @classmethod
    def resolve(cls, identifier: str) -> "Shop":
        """Find a shop by primary key or by slug.

        A 24-character hex identifier is tried as an ObjectId first; if that
        misses (or the identifier is not in key format) it is matched against
        shop slugs. Raises :class:`NotFoundError` when neither path finds a shop.
        """
        identifier = (identifier or "").strip()
        shop = None
        if ObjectId.is_valid(identifier):
            shop = cls.get(identifier)
        if shop is None:
            shop = cls.get_by_slug(identifier)
        if shop is None:
            raise NotFoundError("Shop not found")
        return shop

    @classmethod
    def unique_slug(cls, name: str) -> str:
        return unique_slug(cls.collection(), name)

    @classmethod
    def recent(cls, limit: int, category: Optional[str] = None) -> List["Shop"]:
        query: Dict[str, Any] = {}
        if category:
            query["category"] = category
        cursor = cls.collection().find(query).sort("created_at", DESCENDING).limit(limit)
        return [cls(doc) for doc in cursor]

    @property
    def slug_value(self) -> str:
        return self._data.get("slug") or slugify(self._data.get("name", ""))

    def check_password(self, password: str) -> bool:
        hashed = self._data.get("password_hash")
        if not hashed or not password:
            return False
        return check_password_hash(hashed, str(password))

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug_value,
            "owner": self.owner,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "category": self.category,
            "description": self.description,
            "logoUrl": self.logo_url,
            "rating": float(self._data.get("rating") or 0),
            "reviewCount": int(self._data.get("review_count") or 0),
            "createdAt": isoformat(self.created_at),
        }


class Product(MongoDocument):
    collection_name = "products"

    @classmethod
    def for_shop(cls, shop_id: ObjectId) -> List["Product"]:
        cursor = cls.collection().find({"shop_id": shop_id}).sort("created_at", DESCENDING)
        return [cls(doc) for doc in cursor]

    @classmethod
    def get_for_shop(cls, shop_id: ObjectId, product_id: Any) -> "Product":
        oid = to_object_id(product_id)
        doc = cls.collection().find_one({"_id": oid, "shop_id": shop_id}) if oid else None
        if not doc:
            raise NotFoundError("Product not found")
        return cls(doc)

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "shopId": self.shop_id,
            "name": self.name,
            "price": self.price,
            "description": self.description,
            "createdAt": isoformat(self.created_at),
        }


class Review(MongoDocument):
    collection_name = "reviews"

    @classmethod
    def for_shop(cls, shop_id: ObjectId) -> List["Review"]:
        cursor = cls.collection().find({"shop_id": shop_id}).sort("created_at", DESCENDING)
        return [cls(doc) for doc in cursor]

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "shopId": self.shop_id,
            "customerName": self.customer_name,
            "rating": self.rating,
            "comment": self.comment,
            "createdAt": isoformat(self.created_at),
        }


class Offer(MongoDocument):
    collection_name = "offers"

    def to_json(self, shop_name: Optional[str] = None) -> Dict[str, Any]:
        return {
            "id": self.id,
            "shopId": self.shop_id,
            "shopName": shop_name or "Unknown Shop",
            "title": self.title,
            "description": self.description,
            "startDate": isoformat(self.start_date),
            "endDate": isoformat(self.end_date),
            "discount": self.discount,
            "imageUrl": self.image_url,
            "createdAt": isoformat(self.created_at),
        }


def shop_names(shop_ids: Iterable[ObjectId]) -> Dict[ObjectId, str]:
    ids = {shop_id for shop_id in shop_ids if shop_id}
    if not ids:
        return {}
    cursor = Shop.collection().find({"_id": {"$in": list(ids)}}, {"name": 1})
    return {doc["_id"]: doc.get("name") for doc in cursor}


def ensure_indexes(db: Database) -> None:
    db.shops.create_index("email_lower", unique=True, sparse=True)
    db.shops.create_index("slug", unique=True, sparse=True)
    db.shops.create_index("created_at")
    db.products.create_index([("shop_id", ASCENDING), ("created_at", DESCENDING)])
    db.reviews.create_index("shop_id")
    db.offers.create_index("shop_id")
    db.offers.create_index("end_date")

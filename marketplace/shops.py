from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from flask import current_app
from pymongo.errors import DuplicateKeyError, PyMongoError
from werkzeug.datastructures import FileStorage
from werkzeug.security import generate_password_hash

from .catalog import authorize_shop, build_product_doc
from .clock import utcnow
from .config import MAX_SHOP_LIST_LIMIT
from .errors import ConflictError, ValidationError
from .models import Product, Shop
from .uploads import discard_upload, save_upload


REQUIRED_SHOP_FIELDS = ("name", "address", "phone", "email", "password")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_ARRAY_FIELD_RE = re.compile(r"^products\[(\d+)\]\[(\w+)\]$")


def _text(payload: Mapping[str, Any], field: str) -> str:
    value = payload.get(field)
    return str(value).strip() if value is not None else ""


def extract_products(payload: Mapping[str, Any]) -> List[Any]:
    """Read the product list sent with a registration.

    Accepts a JSON list, a JSON-encoded string, or multipart keys of the form
    ``products[0][name]``.
    """
    raw = payload.get("products")
    if isinstance(raw, list):
        return raw
    if isinstance(raw, str) and raw.strip():
        try:
            parsed = json.loads(raw)
        except ValueError:
            raise ValidationError("Products must be a JSON array")
        if not isinstance(parsed, list):
            raise ValidationError("Products must be a JSON array")
        return parsed
    indexed: Dict[int, Dict[str, Any]] = {}
    for key in payload.keys():
        match = _ARRAY_FIELD_RE.match(key)
        if match:
            indexed.setdefault(int(match.group(1)), {})[match.group(2)] = payload.get(key)
    return [indexed[position] for position in sorted(indexed)]


def save_products(shop: Shop, items: List[Any]) -> int:
    """Insert each product on its own; a bad item never undoes the others."""
    saved = 0
    for position, item in enumerate(items):
        try:
            if not isinstance(item, Mapping):
                raise ValidationError("Product entry must be an object")
            Product.collection().insert_one(build_product_doc(shop.mongo_id, item))
            saved += 1
        except (ValidationError, PyMongoError) as exc:
            current_app.logger.warning(
                "Skipped product %d for shop %s: %s", position, shop.id, getattr(exc, "message", exc)
            )
    return saved


def _insert_shop(doc: Dict[str, Any], name: str, email: str):
    """Insert the shop, picking a fresh slug once if another registration just took it."""
    for attempt in range(2):
        try:
            return Shop.collection().insert_one(doc)
        except DuplicateKeyError:
            if Shop.get_by_email(email):
                raise ConflictError("Shop already registered with this email")
            if attempt:
                raise
            taken = doc["slug"]
            doc["slug"] = Shop.unique_slug(name)
            current_app.logger.info("Slug %s taken during registration, retrying as %s", taken, doc["slug"])


def register_shop(payload: Mapping[str, Any], logo: Optional[FileStorage] = None) -> Tuple[Shop, int, int]:
    """Create a shop plus its initial products.

    Returns the shop, how many products were saved and how many were sent.
    """
    missing = [field for field in REQUIRED_SHOP_FIELDS if not _text(payload, field)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    email = _text(payload, "email")
    if not _EMAIL_RE.match(email):
        raise ValidationError("Invalid email address")
    products = extract_products(payload)
    if Shop.get_by_email(email):
        raise ConflictError("Shop already registered with this email")

    name = _text(payload, "name")
    doc = {
        "name": name,
        "slug": Shop.unique_slug(name),
        "owner": _text(payload, "owner") or None,
        "address": _text(payload, "address"),
        "phone": _text(payload, "phone"),
        "email": email,
        "email_lower": Shop.normalize_email(email),
        "category": _text(payload, "category") or None,
        "description": _text(payload, "description") or None,
        "logo_url": save_upload(logo),
        "password_hash": generate_password_hash(
            str(payload.get("password")), method=current_app.config["PASSWORD_HASH_METHOD"]
        ),
        "rating": 0.0,
        "review_count": 0,
        "created_at": utcnow(),
    }
    try:
        result = _insert_shop(doc, name, email)
    except (ConflictError, PyMongoError):
        discard_upload(doc["logo_url"])
        raise
    doc["_id"] = result.inserted_id
    shop = Shop(doc)

    saved = save_products(shop, products)
    if saved != len(products):
        current_app.logger.warning(
            "Shop %s registered with %d of %d products saved", shop.id, saved, len(products)
        )
    current_app.logger.info("Shop registered: shopId=%s name=%s email=%s", shop.id, shop.name, shop.email)
    return shop, saved, len(products)


def update_shop_profile(
    identifier: str, password: Optional[str], payload: Mapping[str, Any], logo: Optional[FileStorage] = None
) -> Shop:
    shop = authorize_shop(identifier, password)
    updates: Dict[str, Any] = {}
    for field in ("category", "description"):
        if field in payload:
            updates[field] = _text(payload, field) or None
    logo_url = save_upload(logo)
    if logo_url:
        updates["logo_url"] = logo_url
    if not updates:
        raise ValidationError("Nothing to update")
    Shop.collection().update_one({"_id": shop.mongo_id}, {"$set": updates})
    shop.refresh_from_db()
    current_app.logger.info("Shop updated: shopId=%s fields=%s", shop.id, sorted(updates))
    return shop


def recent_shops(raw_limit: Optional[str], category: Optional[str] = None) -> List[Shop]:
    limit = current_app.config["SHOP_LIST_LIMIT"]
    if raw_limit:
        try:
            limit = int(raw_limit)
        except ValueError:
            raise ValidationError("limit must be a number")
    limit = max(1, min(limit, MAX_SHOP_LIST_LIMIT))
    return Shop.recent(limit, category=category or None)

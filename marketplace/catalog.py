"""Password-gated product catalog operations.

Every mutation resolves the shop first, then checks the presented password
against the shop's stored hash. Nothing is written unless both succeed.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Mapping, Optional

from bson import ObjectId
from flask import current_app

from .clock import utcnow
from .errors import UnauthorizedError, ValidationError
from .models import Product, Shop


def parse_price(raw: Any) -> float:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError("Price is required")
    if isinstance(raw, bool):
        raise ValidationError("Price must be a non-negative number")
    try:
        price = float(raw)
    except (TypeError, ValueError):
        raise ValidationError("Price must be a non-negative number")
    if not math.isfinite(price) or price < 0:
        raise ValidationError("Price must be a non-negative number")
    return price


def clean_description(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


def build_product_doc(shop_id: ObjectId, payload: Mapping[str, Any]) -> Dict[str, Any]:
    name = str(payload.get("name") or "").strip()
    if not name:
        raise ValidationError("Product name is required")
    return {
        "shop_id": shop_id,
        "name": name,
        "price": parse_price(payload.get("price")),
        "description": clean_description(payload.get("description")),
        "created_at": utcnow(),
    }


def authorize_shop(identifier: str, password: Optional[str]) -> Shop:
    shop = Shop.resolve(identifier)
    if not password:
        raise ValidationError("Password is required")
    if not shop.check_password(password):
        current_app.logger.warning("Invalid password presented for shop %s", shop.id)
        raise UnauthorizedError("Invalid password")
    return shop


def verify_shop_password(identifier: str, password: Optional[str]) -> bool:
    shop = Shop.resolve(identifier)
    if not password:
        raise ValidationError("Password is required")
    return shop.check_password(password)


def list_products(identifier: str) -> List[Product]:
    shop = Shop.resolve(identifier)
    return Product.for_shop(shop.mongo_id)


def add_product(identifier: str, password: Optional[str], payload: Mapping[str, Any]) -> Product:
    shop = authorize_shop(identifier, password)
    doc = build_product_doc(shop.mongo_id, payload)
    result = Product.collection().insert_one(doc)
    doc["_id"] = result.inserted_id
    current_app.logger.info("Product added: productId=%s shopId=%s", result.inserted_id, shop.id)
    return Product(doc)


def update_product(
    identifier: str, password: Optional[str], product_id: str, payload: Mapping[str, Any]
) -> Product:
    shop = authorize_shop(identifier, password)
    product = Product.get_for_shop(shop.mongo_id, product_id)
    updates: Dict[str, Any] = {}
    if "name" in payload:
        name = str(payload.get("name") or "").strip()
        if not name:
            raise ValidationError("Product name cannot be empty")
        updates["name"] = name
    if "price" in payload:
        updates["price"] = parse_price(payload.get("price"))
    if "description" in payload:
        updates["description"] = clean_description(payload.get("description"))
    if not updates:
        raise ValidationError("Nothing to update")
    updates["updated_at"] = utcnow()
    Product.collection().update_one(
        {"_id": product.mongo_id, "shop_id": shop.mongo_id},
        {"$set": updates},
    )
    product.refresh_from_db()
    current_app.logger.info("Product updated: productId=%s fields=%s", product.id, sorted(updates))
    return product


def delete_product(identifier: str, password: Optional[str], product_id: str) -> None:
    shop = authorize_shop(identifier, password)
    product = Product.get_for_shop(shop.mongo_id, product_id)
    Product.collection().delete_one({"_id": product.mongo_id, "shop_id": shop.mongo_id})
    current_app.logger.info("Product deleted: productId=%s shopId=%s", product.id, shop.id)

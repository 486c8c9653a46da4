#!/usr/bin/env python3
"""One-time helper to bring shops registered by the old API up to date.

Moves embedded ``products`` arrays into the products collection, stores a
unique slug and a lowercased email on every shop, and replaces plaintext
``password`` fields with a password hash.

Usage examples:
  python migrate_legacy.py             # migrates and updates documents
  python migrate_legacy.py --dry-run   # just reports what would change
"""

from __future__ import annotations

import argparse
import os
from datetime import datetime
from typing import Any, Dict

from dotenv import load_dotenv
from pymongo import ASCENDING, MongoClient
from werkzeug.security import generate_password_hash

from marketplace.models import unique_slug


def migrate_embedded_products(db, dry_run: bool) -> int:
    migrated = 0
    shops = db.shops.find({"products": {"$exists": True}})
    for shop in shops:
        items = shop.get("products") or []
        docs = []
        for item in items:
            if not isinstance(item, dict) or not item.get("name"):
                print(f"[SKIP product] Unusable embedded product on shop {shop.get('_id')}: {item!r}")
                continue
            try:
                price = float(item.get("price"))
            except (TypeError, ValueError):
                print(f"[SKIP product] Bad price on shop {shop.get('_id')}: {item!r}")
                continue
            docs.append(
                {
                    "shop_id": shop["_id"],
                    "name": str(item["name"]).strip(),
                    "price": price,
                    "description": item.get("description") or None,
                    "created_at": shop.get("created_at") or datetime.utcnow(),
                }
            )
        if dry_run:
            print(f"[DRY-RUN products] Would move {len(docs)} of {len(items)} products for shop {shop.get('_id')}")
        else:
            if docs:
                db.products.insert_many(docs)
            db.shops.update_one({"_id": shop["_id"]}, {"$unset": {"products": ""}})
            print(f"[products] Moved {len(docs)} of {len(items)} products for shop {shop.get('_id')}")
        migrated += len(docs)
    return migrated


def backfill_shop_keys(db, dry_run: bool) -> int:
    updated = 0
    shops = db.shops.find(
        {"$or": [{"slug": {"$exists": False}}, {"email_lower": {"$exists": False}}]}
    ).sort("created_at", ASCENDING)
    for shop in shops:
        changes: Dict[str, Any] = {}
        if not shop.get("slug"):
            # Oldest first: shops still without a slug are younger and yield to this one.
            changes["slug"] = unique_slug(db.shops, shop.get("name", ""), exclude_id=shop["_id"], legacy=False)
        if not shop.get("email_lower") and shop.get("email"):
            changes["email_lower"] = str(shop["email"]).strip().lower()
        if not changes:
            continue
        if dry_run:
            print(f"[DRY-RUN shop] Would set {changes} on shop {shop.get('_id')}")
        else:
            db.shops.update_one({"_id": shop["_id"]}, {"$set": changes})
            print(f"[shop] Set {sorted(changes)} on shop {shop.get('_id')}")
        updated += 1
    return updated


def hash_plaintext_passwords(db, method: str, dry_run: bool) -> int:
    hashed = 0
    shops = db.shops.find({"password": {"$exists": True}})
    for shop in shops:
        plaintext = shop.get("password")
        if not plaintext:
            print(f"[SKIP password] Empty password on shop {shop.get('_id')}")
            continue
        if dry_run:
            print(f"[DRY-RUN password] Would hash password for shop {shop.get('_id')}")
        else:
            db.shops.update_one(
                {"_id": shop["_id"]},
                {
                    "$set": {"password_hash": generate_password_hash(str(plaintext), method=method)},
                    "$unset": {"password": ""},
                },
            )
            print(f"[password] Hashed password for shop {shop.get('_id')}")
        hashed += 1
    return hashed


def main() -> None:
    parser = argparse.ArgumentParser(description="Migrate shops written by the old API.")
    parser.add_argument("--dry-run", action="store_true", help="Report actions without writing to MongoDB")
    args = parser.parse_args()

    load_dotenv()
    mongo_uri = os.environ.get("MONGODB_URI", "mongodb://127.0.0.1:27017/marketplace")
    db_name = os.environ.get("MONGODB_DB_NAME", "marketplace")
    method = os.environ.get("PASSWORD_HASH_METHOD", "pbkdf2:sha256")

    client = MongoClient(mongo_uri)
    db = client[db_name]

    products = migrate_embedded_products(db, args.dry_run)
    shops = backfill_shop_keys(db, args.dry_run)
    passwords = hash_plaintext_passwords(db, method, args.dry_run)

    print("--- Summary ---")
    print(f"Products moved: {products}")
    print(f"Shops given slug/email keys: {shops}")
    print(f"Passwords hashed: {passwords}")
    if args.dry_run:
        print("Dry-run complete. Re-run without --dry-run to apply changes.")


if __name__ == "__main__":
    main()

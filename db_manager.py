#!/usr/bin/env python3
"""Database management helpers for the marketplace API (MongoDB).

Usage: python db_manager.py <command>

Commands:
  list_shops         - List all shops in the database
  create_shop        - Register a new shop (interactive)
  delete_shop        - Delete a shop by email, with its products, reviews and offers
  sweep_offers       - Delete offers whose end date has passed
  recompute_ratings  - Rewrite every shop rating from its reviews
  reset_db           - Delete all shops, products, reviews and offers
"""

from __future__ import annotations

import sys
from datetime import datetime
from getpass import getpass

from flask import current_app
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError
from werkzeug.security import generate_password_hash

from marketplace import create_app
from marketplace.clock import utcnow
from marketplace.models import Shop, get_db
from marketplace.offers import delete_expired_offers
from marketplace.ratings import refresh_shop_rating


def list_shops() -> None:
    """List all shops with their key attributes."""
    shops = [Shop(doc) for doc in get_db().shops.find().sort("created_at", ASCENDING)]
    if not shops:
        print("No shops found in MongoDB.")
        return
    print(f"\n{'ID':<25} {'Slug':<24} {'Email':<30} {'Rating':<7} {'Created'}")
    print("-" * 100)
    for shop in shops:
        data = shop.to_dict()
        created = data.get("created_at")
        created_str = created.strftime("%Y-%m-%d %H:%M") if isinstance(created, datetime) else "n/a"
        print(
            f"{data.get('id'):<25} "
            f"{shop.slug_value:<24} "
            f"{data.get('email', '-'):<30} "
            f"{data.get('rating', 0):<7} "
            f"{created_str}"
        )
    print(f"\nTotal shops: {len(shops)}")


def create_shop() -> None:
    """Register a new shop interactively."""
    print("\n--- Register New Shop ---")
    name = input("Shop name: ").strip()
    owner = input("Owner: ").strip()
    address = input("Address: ").strip()
    phone = input("Phone: ").strip()
    email = input("Email: ").strip()
    password = getpass("Shop password: ").strip()
    category = input("Category (optional): ").strip()

    if not all([name, address, phone, email, password]):
        print("Error: name, address, phone, email and password are required.")
        return
    if Shop.get_by_email(email):
        print(f"Error: shop with email {email!r} already exists.")
        return

    doc = {
        "name": name,
        "slug": Shop.unique_slug(name),
        "owner": owner or None,
        "address": address,
        "phone": phone,
        "email": email,
        "email_lower": Shop.normalize_email(email),
        "category": category or None,
        "password_hash": generate_password_hash(password, method=current_app.config["PASSWORD_HASH_METHOD"]),
        "rating": 0.0,
        "review_count": 0,
        "created_at": utcnow(),
    }

    try:
        result = get_db().shops.insert_one(doc)
    except DuplicateKeyError:
        print(f"Error: shop with email {email!r} already exists.")
        return

    print(f"Success: created shop {name!r} ({doc['slug']}) with id {result.inserted_id}")


def delete_shop() -> None:
    """Delete a shop by email."""
    email = input("Enter email of shop to delete: ").strip()
    if not email:
        print("Email is required.")
        return
    shop = Shop.get_by_email(email)
    if not shop:
        print(f"Error: No shop found with email {email!r}.")
        return
    confirm = input(f"Are you sure you want to delete {shop.name} ({email})? [y/N]: ")
    if confirm.lower() != "y":
        print("Deletion cancelled.")
        return
    db = get_db()
    db.shops.delete_one({"_id": shop.mongo_id})
    db.products.delete_many({"shop_id": shop.mongo_id})
    db.reviews.delete_many({"shop_id": shop.mongo_id})
    db.offers.delete_many({"shop_id": shop.mongo_id})
    print("Shop and related data deleted.")


def sweep_offers() -> None:
    """Delete expired offers now."""
    deleted = delete_expired_offers(utcnow())
    print(f"Deleted {deleted} expired offers.")


def recompute_ratings() -> None:
    """Rewrite the stored rating of every shop from its reviews."""
    count = 0
    for doc in get_db().shops.find():
        summary = refresh_shop_rating(Shop(doc))
        print(f"{doc.get('name')}: {summary.rating} ({summary.total_reviews} reviews)")
        count += 1
    print(f"\nRatings refreshed for {count} shops.")


def reset_db() -> None:
    """Reset all collections (drops shops, products, reviews and offers)."""
    confirm = input("This will DELETE all shops, products, reviews and offers. Continue? [y/N]: ")
    if confirm.lower() != "y":
        print("Reset cancelled.")
        return
    db = get_db()
    db.shops.delete_many({})
    db.products.delete_many({})
    db.reviews.delete_many({})
    db.offers.delete_many({})
    print("Database reset.")


def show_help() -> None:
    print(__doc__)


def main() -> None:
    if len(sys.argv) < 2:
        show_help()
        return
    command = sys.argv[1].lower()
    commands = {
        "list_shops": list_shops,
        "create_shop": create_shop,
        "delete_shop": delete_shop,
        "sweep_offers": sweep_offers,
        "recompute_ratings": recompute_ratings,
        "reset_db": reset_db,
        "help": show_help,
    }
    handler = commands.get(command)
    if not handler:
        print(f"Unknown command: {command}")
        show_help()
        return
    app = create_app({"SWEEPER_ENABLED": False})
    with app.app_context():
        handler()


if __name__ == "__main__":
    main()

from datetime import datetime

import mongomock
import pytest
from werkzeug.security import check_password_hash

import migrate_legacy


@pytest.fixture
def legacy_db():
    db = mongomock.MongoClient()["legacy"]
    db.shops.insert_many(
        [
            {
                "name": "Joe's Café #1",
                "email": "Joe@Example.com",
                "password": "letmein",
                "products": [
                    {"name": "Espresso", "price": 2.5},
                    {"name": "Broken", "price": "free"},
                    {"price": 1},
                ],
                "created_at": datetime(2023, 1, 1),
            },
            {"name": "Joes Caf 1", "email": "other@example.com", "created_at": datetime(2023, 2, 1)},
        ]
    )
    return db


def test_dry_run_writes_nothing(legacy_db):
    before = list(legacy_db.shops.find())
    migrate_legacy.migrate_embedded_products(legacy_db, dry_run=True)
    migrate_legacy.backfill_shop_keys(legacy_db, dry_run=True)
    migrate_legacy.hash_plaintext_passwords(legacy_db, "pbkdf2:sha256:1000", dry_run=True)
    assert list(legacy_db.shops.find()) == before
    assert legacy_db.products.count_documents({}) == 0


def test_embedded_products_move_to_collection(legacy_db):
    moved = migrate_legacy.migrate_embedded_products(legacy_db, dry_run=False)
    assert moved == 1
    shop = legacy_db.shops.find_one({"email": "Joe@Example.com"})
    assert "products" not in shop
    product = legacy_db.products.find_one({})
    assert product["shop_id"] == shop["_id"]
    assert product["name"] == "Espresso"
    assert product["price"] == 2.5


def test_backfill_gives_unique_slugs_oldest_first(legacy_db):
    assert migrate_legacy.backfill_shop_keys(legacy_db, dry_run=False) == 2
    first = legacy_db.shops.find_one({"email": "Joe@Example.com"})
    second = legacy_db.shops.find_one({"email": "other@example.com"})
    assert first["slug"] == "joes-caf-1"
    assert first["email_lower"] == "joe@example.com"
    assert second["slug"] == "joes-caf-1-2"


def test_plaintext_passwords_are_hashed(legacy_db):
    assert migrate_legacy.hash_plaintext_passwords(legacy_db, "pbkdf2:sha256:1000", dry_run=False) == 1
    shop = legacy_db.shops.find_one({"email": "Joe@Example.com"})
    assert "password" not in shop
    assert check_password_hash(shop["password_hash"], "letmein")

from __future__ import annotations

import atexit
import logging
import os
from typing import Any, Dict, Mapping, Optional

from flask import Flask, jsonify, request, send_from_directory
from flask_cors import CORS
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from . import catalog, offers, ratings, shops
from .clock import SystemClock, utcnow
from .config import load_config
from .errors import register_error_handlers
from .models import Shop, ensure_indexes
from .sweeper import ExpirationSweeper


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def request_payload() -> Mapping[str, Any]:
    """JSON body when one was sent, otherwise the (multipart or urlencoded) form."""
    if request.is_json:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}
    return request.form


def create_app(
    test_config: Optional[Mapping[str, Any]] = None,
    *,
    mongo_client: Optional[MongoClient] = None,
    clock: Any = None,
) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.update(load_config())
    if test_config:
        app.config.update(test_config)
    app.config["UPLOAD_FOLDER"] = os.path.abspath(app.config["UPLOAD_FOLDER"])
    os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)

    logging.basicConfig(level=app.config["LOG_LEVEL"], format=LOG_FORMAT)
    app.logger.setLevel(app.config["LOG_LEVEL"])

    CORS(app, origins=app.config["CORS_ORIGINS"])

    client = mongo_client or MongoClient(app.config["MONGODB_URI"])
    mongo_db = client[app.config["MONGODB_DB_NAME"]]
    app.extensions["mongo_db"] = mongo_db
    app.extensions["clock"] = clock or SystemClock()

    try:
        ensure_indexes(mongo_db)
    except PyMongoError as exc:
        app.logger.warning("Unable to prepare MongoDB collections: %s", exc)

    register_error_handlers(app)

    @app.route("/")
    def index():
        return "API is running", 200

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "env": app.config["ENV_NAME"]})

    @app.route("/uploads/<path:filename>")
    def serve_upload(filename: str):
        return send_from_directory(app.config["UPLOAD_FOLDER"], filename)

    # --- Shops ---

    @app.route("/api/shops", methods=["POST"])
    @app.route("/api/shops/register", methods=["POST"])
    def register_shop():
        shop, saved, total = shops.register_shop(request_payload(), request.files.get("logo"))
        body: Dict[str, Any] = {
            "message": "Shop registered successfully",
            "shop": shop.to_json(),
            "productsSaved": saved,
            "productsFailed": total - saved,
        }
        if saved != total:
            body["message"] = f"Shop registered successfully; {saved} of {total} products saved"
        return jsonify(body), 201

    @app.route("/api/shops", methods=["GET"])
    def list_shops():
        found = shops.recent_shops(request.args.get("limit"), request.args.get("category"))
        return jsonify([shop.to_json() for shop in found])

    @app.route("/api/shops/<identifier>", methods=["GET"])
    def get_shop(identifier: str):
        return jsonify(Shop.resolve(identifier).to_json())

    @app.route("/api/shops/<identifier>", methods=["PATCH"])
    def update_shop(identifier: str):
        payload = request_payload()
        shop = shops.update_shop_profile(
            identifier, payload.get("password"), payload, request.files.get("logo")
        )
        return jsonify({"message": "Shop updated", "shop": shop.to_json()})

    @app.route("/api/shops/<identifier>/verify", methods=["POST"])
    def verify_shop(identifier: str):
        ok = catalog.verify_shop_password(identifier, request_payload().get("password"))
        return jsonify({"ok": ok})

    # --- Products ---

    @app.route("/api/shops/<identifier>/products", methods=["GET"])
    def list_products(identifier: str):
        return jsonify([product.to_json() for product in catalog.list_products(identifier)])

    @app.route("/api/shops/<identifier>/products", methods=["POST"])
    def add_product(identifier: str):
        payload = request_payload()
        product = catalog.add_product(identifier, payload.get("password"), payload)
        return jsonify({"message": "Product added", "product": product.to_json()}), 201

    @app.route("/api/shops/<identifier>/products/<product_id>", methods=["PUT", "PATCH"])
    def update_product(identifier: str, product_id: str):
        payload = request_payload()
        product = catalog.update_product(identifier, payload.get("password"), product_id, payload)
        return jsonify({"message": "Product updated", "product": product.to_json()})

    @app.route("/api/shops/<identifier>/products/<product_id>", methods=["DELETE"])
    def delete_product(identifier: str, product_id: str):
        payload = request_payload()
        catalog.delete_product(identifier, payload.get("password"), product_id)
        return jsonify({"message": "Product deleted"})

    # --- Reviews ---

    @app.route("/api/shops/<identifier>/reviews", methods=["GET"])
    def list_reviews(identifier: str):
        reviews, summary = ratings.list_reviews(identifier)
        return jsonify(
            {
                "reviews": [review.to_json() for review in reviews],
                "averageRating": summary.rating,
                "totalReviews": summary.total_reviews,
            }
        )

    @app.route("/api/shops/<identifier>/reviews", methods=["POST"])
    def add_review(identifier: str):
        review, summary = ratings.submit_review(identifier, request_payload())
        body: Dict[str, Any] = {"message": "Review added", "review": review.to_json()}
        if summary is None:
            body["message"] = "Review added; shop rating will be refreshed later"
            body["rating"] = None
            body["totalReviews"] = None
        else:
            body["rating"] = summary.rating
            body["totalReviews"] = summary.total_reviews
        return jsonify(body), 201

    # --- Offers ---

    @app.route("/api/shops/<identifier>/offers", methods=["GET"])
    def list_shop_offers(identifier: str):
        return jsonify(offers.shop_offers(identifier))

    @app.route("/api/offers", methods=["GET"])
    def list_offers():
        return jsonify(offers.active_offers(utcnow()))

    @app.route("/api/offers", methods=["POST"])
    def create_offer():
        offer, shop = offers.create_offer(request_payload(), request.files.get("image"))
        return jsonify({"message": "Offer created successfully", "offer": offer.to_json(shop.name)}), 201

    @app.route("/api/offers/expired", methods=["DELETE"])
    def delete_expired_offers():
        deleted = offers.delete_expired_offers(utcnow())
        app.logger.info("Deleted %d expired offers", deleted)
        return jsonify({"message": f"Deleted {deleted} expired offers", "deletedCount": deleted})

    if app.config["SWEEPER_ENABLED"]:
        sweeper = ExpirationSweeper(app, app.config["SWEEP_INTERVAL_SECONDS"])
        sweeper.start()
        atexit.register(sweeper.stop)
        app.extensions["sweeper"] = sweeper

    return app


if __name__ == "__main__":
    create_app().run(debug=True, host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))

from __future__ import annotations

from typing import Optional, Tuple

from flask import Flask, Response, jsonify
from werkzeug.exceptions import HTTPException


class MarketplaceError(Exception):
    """Base class for errors reported to API callers with a structured message."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(MarketplaceError):
    status_code = 400


class ConflictError(MarketplaceError):
    # Duplicate email is reported like any other validation failure.
    status_code = 400


class NotFoundError(MarketplaceError):
    status_code = 404


class UnauthorizedError(MarketplaceError):
    status_code = 401


class RatingUpdateError(Exception):
    """The review was stored but the shop rating could not be refreshed."""


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(MarketplaceError)
    def handle_marketplace_error(exc: MarketplaceError) -> Tuple[Response, int]:
        return jsonify({"message": exc.message}), exc.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException) -> Tuple[Response, int]:
        return jsonify({"message": exc.description or exc.name}), exc.code or 500

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception) -> Tuple[Response, int]:
        app.logger.exception("Unhandled error: %s", exc)
        return jsonify({"message": "Server error"}), 500

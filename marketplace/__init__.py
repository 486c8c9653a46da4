"""Local-business marketplace API: shops, products, reviews and offers."""

from .app import create_app

__all__ = ["create_app"]

from __future__ import annotations

from datetime import datetime

from flask import current_app


class SystemClock:
    """Wall clock returning naive UTC datetimes, matching what pymongo hands back."""

    def now(self) -> datetime:
        return datetime.utcnow()


def utcnow() -> datetime:
    return current_app.extensions["clock"].now()

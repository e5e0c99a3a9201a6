"""Declarative base and small column helpers shared by all models."""
from __future__ import annotations

import datetime
import json
from typing import List, Optional

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime.datetime:
    return datetime.datetime.utcnow()


def iso(value: Optional[datetime.datetime | datetime.date]) -> Optional[str]:
    return value.isoformat() if value else None


def load_ids(raw: Optional[str]) -> List[int]:
    """Decode a JSON id array column; malformed content reads as empty."""
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except ValueError:
        return []
    if not isinstance(data, list):
        return []
    return [int(item) for item in data if isinstance(item, int) and not isinstance(item, bool)]


def dump_ids(ids) -> str:
    return json.dumps([int(i) for i in ids])


__all__ = ["Base", "utcnow", "iso", "load_ids", "dump_ids"]

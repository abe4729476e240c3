"""
Catalog data models for the Access Service.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from shared.errors import ValidationError

PLAN_SLOTS = ("plan_1", "plan_2", "plan_3")
DEFAULT_CATEGORY = "meus_produtos"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MediaKind(str, Enum):
    """Media item kinds."""
    IMAGE = "image"
    VIDEO = "video"


@dataclass
class MediaItem:
    """A single gallery entry owned by exactly one product."""
    kind: MediaKind
    url: str
    ordinal: int = 0

    def __post_init__(self):
        self.kind = MediaKind(self.kind)
        if not isinstance(self.url, str) or not self.url.strip():
            raise ValueError("media url must be a non-empty string")
        # bool is an int subclass; True is not a position.
        if isinstance(self.ordinal, bool) or not isinstance(self.ordinal, int):
            raise ValueError("media ordinal must be an integer")
        if self.ordinal < 0:
            raise ValueError("media ordinal must be non-negative")

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "MediaItem":
        """Build from a serialized field bag (`type`/`url`/`order_index`, or `kind`/`ordinal`)."""
        kind = record.get("type", record.get("kind"))
        ordinal = record.get("order_index", record.get("ordinal", 0))
        if ordinal is None:
            ordinal = 0
        return cls(kind=kind, url=record.get("url"), ordinal=ordinal)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.kind.value, "url": self.url, "order_index": self.ordinal}


@dataclass
class Product:
    """Catalog entry. Up to three plan codes unlock it."""
    id: Optional[int]
    name: str
    description: Optional[str] = None
    banner_url: Optional[str] = None
    main_video: Optional[str] = None
    access_url: Optional[str] = None
    buy_url: Optional[str] = None
    price: float = 0.0
    category: str = DEFAULT_CATEGORY
    plan_1: Optional[str] = None
    plan_2: Optional[str] = None
    plan_3: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    gallery: List[MediaItem] = field(default_factory=list)

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValidationError("Product name is required", details={"field": "name"})
        self.price = float(self.price or 0)
        if self.price < 0:
            raise ValidationError("Product price must be non-negative", details={"field": "price"})
        self.category = self.category or DEFAULT_CATEGORY
        for slot in PLAN_SLOTS:
            code = getattr(self, slot)
            if code is not None:
                # Blank slots are unset, never a plan code that matches "".
                setattr(self, slot, str(code).strip() or None)

    def plan_slots(self) -> Iterator[Tuple[str, str]]:
        """Populated plan slots in slot order."""
        for slot in PLAN_SLOTS:
            code = getattr(self, slot)
            if code:
                yield slot, code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "banner_url": self.banner_url,
            "main_video": self.main_video,
            "access_url": self.access_url,
            "buy_url": self.buy_url,
            "price": self.price,
            "category": self.category,
            "plan_1": self.plan_1,
            "plan_2": self.plan_2,
            "plan_3": self.plan_3,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "gallery": [item.to_dict() for item in self.gallery],
        }

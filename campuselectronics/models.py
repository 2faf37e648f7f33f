"""Data models shared by the listing feed, the sell flow and the session."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Condition(str, Enum):
    """Item condition as offered in the sell form."""

    NEW = "New"
    LIKE_NEW = "Like New"
    GOOD = "Good"
    FAIR = "Fair"

    @classmethod
    def parse(cls, value: "Condition | str") -> "Condition":
        if isinstance(value, cls):
            return value
        cleaned = str(value).strip().lower().replace("_", " ")
        for condition in cls:
            if condition.value.lower() == cleaned:
                return condition
        raise ValueError(f"Unbekannter Zustand: {value!r}")


class Theme(str, Enum):
    """Display mode preference."""

    LIGHT = "light"
    DARK = "dark"

    def toggled(self) -> "Theme":
        return Theme.DARK if self is Theme.LIGHT else Theme.LIGHT


@dataclass(frozen=True)
class ImagePayload:
    """A self-contained encoded image (base64 without data-URL prefix)."""

    data: str
    mime_type: str = "image/jpeg"

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", self.data.strip())
        if not self.data:
            raise ValueError("Bilddaten dürfen nicht leer sein.")

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"

    @classmethod
    def from_data_url(cls, value: str) -> "ImagePayload":
        """Accept either ``data:<mime>;base64,<data>`` or a bare base64 string."""

        header, sep, data = value.partition(",")
        if not sep:
            return cls(data=value)
        mime_type = "image/jpeg"
        if header.startswith("data:"):
            mime_type = header[len("data:"):].split(";", 1)[0] or mime_type
        return cls(data=data, mime_type=mime_type)


@dataclass(frozen=True)
class User:
    """A mock-authenticated marketplace user."""

    user_id: str
    email: str
    name: str
    avatar: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "email", self.email.strip())
        object.__setattr__(self, "name", self.name.strip())


@dataclass(frozen=True)
class AIAnalysisResult:
    """Fields suggested by the enrichment service for one image."""

    title: str
    description: str
    suggested_price: float
    category: str

    @property
    def rounded_price(self) -> int:
        # Halbe Beträge werden aufgerundet (wie Math.round), nicht zur geraden Zahl.
        return int(math.floor(self.suggested_price + 0.5))


@dataclass(frozen=True)
class Listing:
    """A published marketplace listing. Immutable once created."""

    listing_id: str
    title: str
    description: str
    price: Optional[float]
    category: str
    condition: Condition
    image: str
    seller_id: str
    seller_name: str
    created_at: int

    def __post_init__(self) -> None:
        for name in ("listing_id", "title", "description", "category", "image", "seller_id", "seller_name"):
            object.__setattr__(self, name, getattr(self, name).strip())
        object.__setattr__(self, "condition", Condition.parse(self.condition))

    @property
    def display_price(self) -> str:
        if self.price is None:
            return "₹–"
        return f"₹{format_inr(self.price)}"


def format_inr(amount: float) -> str:
    """Format an amount with Indian digit grouping, e.g. ``1,50,000``."""

    negative = amount < 0
    cents = int(round(abs(amount) * 100))
    whole, fraction = divmod(cents, 100)

    digits = str(whole)
    if len(digits) > 3:
        head, tail = digits[:-3], digits[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        digits = ",".join(groups + [tail])

    text = digits
    if fraction:
        text += "." + f"{fraction:02d}".rstrip("0")
    return f"-{text}" if negative else text

"""In-progress listing state for the sell form."""

from __future__ import annotations

import logging
import math
import time
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

from .models import AIAnalysisResult, Condition, ImagePayload, Listing

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "description", "price", "category", "condition")


class ValidationError(ValueError):
    """Raised when a draft cannot be published."""


def parse_price(text: str) -> Optional[float]:
    """Parse the price as typed into the form; ``None`` if blank or invalid."""

    cleaned = text.strip().replace(",", "")
    if not cleaned:
        return None
    try:
        value = float(cleaned)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


@dataclass
class ListingDraft:
    """Mutable form fields plus the bookkeeping for pending enrichment.

    Every enrichment request gets a token from :meth:`begin_enrichment`.
    Only the newest token may write into the draft, so an answer for a
    replaced image never overwrites fields filled for the current one.
    """

    title: str = ""
    description: str = ""
    price: str = ""
    category: str = ""
    condition: Condition = Condition.GOOD
    image: Optional[ImagePayload] = None
    _latest_token: int = field(default=0, init=False, repr=False)
    _pending_token: Optional[int] = field(default=None, init=False, repr=False)

    @property
    def pending(self) -> bool:
        return self._pending_token is not None

    def set_image(self, image: ImagePayload) -> None:
        self.image = image

    def update(self, **fields) -> None:
        """Apply manual edits to the form fields."""

        for name, value in fields.items():
            if name not in EDITABLE_FIELDS:
                raise AttributeError(f"Unbekanntes Formularfeld: {name}")
            if name == "condition":
                value = Condition.parse(value)
            elif name == "price" and not isinstance(value, str):
                value = str(value)
            setattr(self, name, value)

    def apply_enrichment(self, result: AIAnalysisResult) -> None:
        self.title = result.title
        self.description = result.description
        self.category = result.category
        self.price = str(result.rounded_price)

    def begin_enrichment(self) -> int:
        self._latest_token += 1
        self._pending_token = self._latest_token
        return self._latest_token

    def is_current(self, token: int) -> bool:
        return token == self._latest_token

    def finish_enrichment(self, token: int, result: Optional[AIAnalysisResult] = None) -> bool:
        """Complete the request ``token``; returns ``False`` for stale tokens."""

        if not self.is_current(token):
            logger.info(
                "Veraltete Analyse verworfen (Token %s, aktuell %s).", token, self._latest_token
            )
            return False
        if result is not None:
            self.apply_enrichment(result)
        self._pending_token = None
        return True

    def is_submittable(self) -> bool:
        return self.image is not None and not self.pending

    def missing_fields(self) -> List[str]:
        """Fields the form requires before posting."""

        missing = []
        if not self.title.strip():
            missing.append("title")
        price = parse_price(self.price)
        if price is None or price <= 0:
            missing.append("price")
        return missing

    def to_listing(
        self,
        seller_id: str,
        seller_name: str,
        *,
        listing_id: Optional[str] = None,
        created_at: Optional[int] = None,
    ) -> Listing:
        if self.image is None:
            raise ValidationError("Bitte zuerst ein Bild hochladen oder aufnehmen.")

        return Listing(
            listing_id=listing_id or uuid.uuid4().hex,
            title=self.title,
            description=self.description,
            price=parse_price(self.price),
            category=self.category,
            condition=self.condition,
            image=self.image.data_url,
            seller_id=seller_id,
            seller_name=seller_name,
            created_at=created_at if created_at is not None else int(time.time() * 1000),
        )

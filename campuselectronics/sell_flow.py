"""Orchestration of the sell form: image intake, AI enrichment and publishing."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .camera import CameraController, CameraNotActive, PermissionDenied
from .draft import ListingDraft, ValidationError
from .enrichment import EnrichmentClient, EnrichmentFailed
from .feed import ListingFeed
from .images import UnsupportedInput, load_image_file
from .models import ImagePayload, Listing
from .session import Session

logger = logging.getLogger(__name__)

FIELD_LABELS = {"title": "Titel", "price": "Preis"}


@dataclass(frozen=True)
class Notice:
    """Non-blocking message for the user."""

    level: str
    message: str


class SellFlow:
    """One listing-creation session.

    Errors from acquisition, enrichment and validation are turned into
    :class:`Notice` entries; the form always stays usable.
    """

    def __init__(
        self,
        feed: ListingFeed,
        session: Session,
        client: EnrichmentClient,
        camera: Optional[CameraController] = None,
    ) -> None:
        self.feed = feed
        self.session = session
        self.client = client
        self.camera = camera
        self.draft = ListingDraft()
        self.notices: List[Notice] = []
        self._task: Optional[asyncio.Task] = None

    def _notify(self, level: str, message: str) -> None:
        self.notices.append(Notice(level, message))
        logger.log(logging.WARNING if level == "warning" else logging.INFO, message)

    @property
    def analyzing(self) -> bool:
        return self.draft.pending

    @property
    def camera_open(self) -> bool:
        return self.camera is not None and self.camera.is_active

    async def upload_file(self, path: str | Path) -> bool:
        try:
            payload = await asyncio.to_thread(load_image_file, path)
        except UnsupportedInput as exc:
            self._notify("warning", f"Bild konnte nicht verwendet werden: {exc}")
            return False

        if self.camera_open:
            await self.camera.stop()
        self._accept_image(payload)
        return True

    async def start_camera(self) -> bool:
        if self.camera is None:
            self._notify("warning", "Keine Kamera verfügbar. Bitte ein Bild hochladen.")
            return False
        try:
            await self.camera.start()
        except PermissionDenied as exc:
            logger.debug("Kamera nicht verfügbar", exc_info=True)
            self._notify("warning", f"{exc} Bitte stattdessen ein Bild hochladen.")
            return False
        return True

    async def capture_photo(self) -> bool:
        if self.camera is None:
            self._notify("warning", "Keine Kamera verfügbar. Bitte ein Bild hochladen.")
            return False
        try:
            payload = await self.camera.capture()
        except CameraNotActive as exc:
            self._notify("warning", str(exc))
            return False
        self._accept_image(payload)
        return True

    async def stop_camera(self) -> None:
        if self.camera is not None:
            await self.camera.stop()

    def _accept_image(self, payload: ImagePayload) -> None:
        self.draft.set_image(payload)
        self._start_enrichment(payload)

    def _start_enrichment(self, payload: ImagePayload) -> int:
        if self._task is not None and not self._task.done():
            logger.info("Neues Bild – laufende Analyse wird abgebrochen.")
            self._task.cancel()
        token = self.draft.begin_enrichment()
        self._task = asyncio.create_task(self._run_enrichment(token, payload))
        return token

    async def _run_enrichment(self, token: int, payload: ImagePayload) -> None:
        result = None
        try:
            result = await asyncio.to_thread(self.client.enrich, payload)
        except EnrichmentFailed as exc:
            logger.warning("KI-Analyse fehlgeschlagen: %s", exc, exc_info=True)
        except Exception:  # noqa: BLE001
            logger.exception("Unerwarteter Fehler bei der KI-Analyse")
        finally:
            # Auch bei Abbruch wird der Token abgeschlossen; veraltete Tokens sind wirkungslos
            current = self.draft.finish_enrichment(token, result)

        if not current:
            return
        if result is None:
            self._notify(
                "warning",
                "KI-Analyse fehlgeschlagen – bitte die Felder manuell ausfüllen.",
            )
        else:
            self._notify("info", f"KI-Vorschlag übernommen: {result.title}")

    async def wait_for_enrichment(self) -> None:
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
        # Während des Wartens kann ein neueres Bild eine neue Analyse gestartet haben
        if self._task is not task:
            await self.wait_for_enrichment()

    def submit(self) -> Optional[Listing]:
        """Publish the draft into the feed; ``None`` if it is not ready."""

        draft = self.draft
        try:
            if draft.image is None:
                raise ValidationError("Bitte zuerst ein Bild hochladen oder aufnehmen.")
            if not draft.is_submittable():
                raise ValidationError("Die KI-Analyse läuft noch. Bitte kurz warten.")
            if self.camera_open:
                raise ValidationError("Die Kamera ist noch geöffnet.")
            missing = draft.missing_fields()
            if missing:
                labels = ", ".join(FIELD_LABELS.get(name, name) for name in missing)
                raise ValidationError(f"Bitte ausfüllen: {labels}")

            listing = draft.to_listing(*self.session.seller_identity())
        except ValidationError as exc:
            self._notify("warning", str(exc))
            return None

        self.feed.publish(listing)
        logger.info("Anzeige veröffentlicht: %s (%s)", listing.title, listing.listing_id)
        self.draft = ListingDraft()
        return listing

    async def aclose(self) -> None:
        """Release the camera and abandon a pending analysis."""

        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        await self.stop_camera()

    async def cancel(self) -> None:
        await self.aclose()
        self.draft = ListingDraft()

    async def __aenter__(self) -> "SellFlow":
        return self

    async def __aexit__(self, *exc) -> bool:
        await self.aclose()
        return False

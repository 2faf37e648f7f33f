"""Camera capture through a Chromium page driven by Playwright.

The browser owns the actual media device. A small local page requests the
rear camera via ``getUserMedia``, shows it in a ``<video>`` element and
rasterises the current frame into a JPEG data URL on capture. At most one
stream is open per controller; every exit path stops the tracks again so the
camera does not stay active.
"""

from __future__ import annotations

import asyncio
import logging

from playwright.async_api import BrowserContext, Error as PlaywrightError, Page, Route

from . import config
from .models import ImagePayload

logger = logging.getLogger(__name__)

CAMERA_PAGE_URL = "http://localhost/campuselectronics/camera"

_CAMERA_PAGE_HTML = """<!doctype html>
<html><body><video autoplay playsinline muted></video></body></html>"""

_START_STREAM_JS = """
async (facingMode) => {
  try {
    const stream = await navigator.mediaDevices.getUserMedia({
      video: { facingMode: facingMode },
      audio: false,
    });
    const video = document.querySelector("video");
    video.srcObject = stream;
    window.__cameraStream = stream;
    if (video.readyState < 2) {
      await new Promise((resolve) => { video.onloadeddata = resolve; });
    }
    await video.play();
    return { ok: true };
  } catch (err) {
    return { ok: false, name: err && err.name, message: String((err && err.message) || err) };
  }
}
"""

_CAPTURE_JS = """
(quality) => {
  const video = document.querySelector("video");
  if (!window.__cameraStream || !video || !video.videoWidth) {
    return null;
  }
  const canvas = document.createElement("canvas");
  canvas.width = video.videoWidth;
  canvas.height = video.videoHeight;
  canvas.getContext("2d").drawImage(video, 0, 0, canvas.width, canvas.height);
  return canvas.toDataURL("image/jpeg", quality);
}
"""

_STOP_STREAM_JS = """
() => {
  const stream = window.__cameraStream;
  let stopped = 0;
  if (stream) {
    stream.getTracks().forEach((track) => { track.stop(); stopped += 1; });
  }
  window.__cameraStream = null;
  const video = document.querySelector("video");
  if (video) {
    video.srcObject = null;
  }
  return stopped;
}
"""


class PermissionDenied(RuntimeError):
    """Raised when the platform refuses camera access."""


class CameraNotActive(RuntimeError):
    """Raised when a frame is requested without an open camera stream."""


async def _fulfill_camera_page(route: Route) -> None:
    await route.fulfill(status=200, content_type="text/html", body=_CAMERA_PAGE_HTML)


async def launch_camera_context(
    playwright,
    *,
    headless: bool = config.HEADLESS,
    fake_device: bool = False,
):
    """Launch Chromium with camera permission and return ``(browser, context)``."""

    args = ["--use-fake-ui-for-media-stream"]
    if fake_device:
        args.append("--use-fake-device-for-media-stream")

    browser = await playwright.chromium.launch(headless=headless, args=args)
    context = await browser.new_context()
    await context.grant_permissions(["camera"])
    return browser, context


class CameraController:
    """Own at most one live camera stream inside ``context``."""

    def __init__(
        self,
        context: BrowserContext,
        *,
        facing_mode: str = config.CAMERA_FACING_MODE,
        quality: int = config.JPEG_QUALITY,
    ) -> None:
        self._context = context
        self.facing_mode = facing_mode
        self.quality = quality
        self._page: Page | None = None
        self._lock = asyncio.Lock()

    @property
    def is_active(self) -> bool:
        return self._page is not None

    async def start(self) -> None:
        """Open the camera, stopping an already open stream first."""

        async with self._lock:
            if self._page is not None:
                logger.info("Kamera ist bereits aktiv – beende vorherigen Stream.")
                await self._release()

            page = await self._context.new_page()
            try:
                await page.route(CAMERA_PAGE_URL, _fulfill_camera_page)
                await page.goto(CAMERA_PAGE_URL)
                result = await page.evaluate(_START_STREAM_JS, self.facing_mode)
            except PlaywrightError as exc:
                await self._close_page(page)
                raise PermissionDenied("Kamera konnte nicht geöffnet werden.") from exc

            if not result or not result.get("ok"):
                await self._close_page(page)
                reason = (result or {}).get("name") or "unbekannt"
                logger.warning("Kamerazugriff verweigert: %s", reason)
                raise PermissionDenied(
                    f"Kein Zugriff auf die Kamera ({reason}). Bitte Berechtigungen prüfen."
                )

            self._page = page
            logger.info("Kamera gestartet (facingMode='%s').", self.facing_mode)

    async def capture(self) -> ImagePayload:
        """Grab the current frame as JPEG and release the camera."""

        async with self._lock:
            if self._page is None:
                raise CameraNotActive("Kamera ist nicht geöffnet.")

            try:
                data_url = await self._page.evaluate(_CAPTURE_JS, self.quality / 100)
            except PlaywrightError as exc:
                await self._release()
                raise CameraNotActive("Kamerabild konnte nicht gelesen werden.") from exc

            if not data_url:
                raise CameraNotActive("Noch kein Kamerabild verfügbar.")

            await self._release()

        logger.info("Foto aufgenommen.")
        return ImagePayload.from_data_url(data_url)

    async def stop(self) -> None:
        async with self._lock:
            await self._release()

    async def _release(self) -> None:
        page, self._page = self._page, None
        if page is None:
            return
        try:
            stopped = await page.evaluate(_STOP_STREAM_JS)
            logger.debug("%s Kamera-Track(s) beendet.", stopped)
        except PlaywrightError as exc:
            logger.warning("Kamera-Stream konnte nicht sauber beendet werden: %s", exc)
        await self._close_page(page)

    @staticmethod
    async def _close_page(page: Page) -> None:
        try:
            await page.close()
        except PlaywrightError as exc:
            logger.warning("Kameraseite konnte nicht geschlossen werden: %s", exc)

    async def __aenter__(self) -> "CameraController":
        return self

    async def __aexit__(self, *exc) -> bool:
        await self.stop()
        return False

"""Command-line entry point for the CampusElectronics marketplace."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from . import config
from .camera import CameraController, launch_camera_context
from .enrichment import EnrichmentClient, configure_enrichment_logging
from .feed import ListingFeed, SortOrder, demo_listings
from .models import Condition, Listing, Theme
from .sell_flow import SellFlow
from .session import Session, ThemeState, ThemeStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CampusElectronics Marktplatz")
    parser.add_argument(
        "--image",
        help="Bilddatei für eine neue Anzeige (auch Ersatz, falls die Kamera fehlt)",
    )
    parser.add_argument(
        "--camera",
        action="store_true",
        help="Foto für eine neue Anzeige mit der Kamera aufnehmen",
    )
    parser.add_argument("--title", help="Titel manuell setzen")
    parser.add_argument("--description", help="Beschreibung manuell setzen")
    parser.add_argument("--price", help="Preis in INR manuell setzen")
    parser.add_argument("--category", help="Kategorie manuell setzen")
    parser.add_argument(
        "--condition",
        choices=[condition.value for condition in Condition],
        help="Zustand des Artikels",
    )
    parser.add_argument("--email", help="E-Mail für die Demo-Anmeldung")
    parser.add_argument("--name", help="Anzeigename für die Demo-Anmeldung")
    parser.add_argument(
        "--search",
        default="",
        help="Anzeigen nach Titel oder Kategorie filtern",
    )
    parser.add_argument(
        "--sort",
        choices=[order.value for order in SortOrder],
        default=SortOrder.NEWEST.value,
        help="Sortierung der Anzeigen",
    )
    parser.add_argument(
        "--toggle-theme",
        action="store_true",
        help="Zwischen hellem und dunklem Theme wechseln",
    )
    parser.add_argument(
        "--theme-file",
        default=config.THEME_FILE,
        help="Datei, in der das Theme gespeichert wird",
    )
    parser.add_argument(
        "--model",
        default=config.ENRICHMENT_MODEL,
        help="Modell für die Bildanalyse",
    )
    parser.add_argument(
        "--endpoint",
        default=config.ENRICHMENT_ENDPOINT,
        help="Endpunkt für die Bildanalyse ({model} wird ersetzt)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=config.ENRICHMENT_TIMEOUT,
        help="Timeout der Bildanalyse in Sekunden",
    )
    parser.add_argument(
        "--attempts",
        type=int,
        default=config.ENRICHMENT_MAX_ATTEMPTS,
        help="Maximale Anzahl an Versuchen für die Bildanalyse",
    )
    parser.add_argument(
        "--headless",
        action=argparse.BooleanOptionalAction,
        default=config.HEADLESS,
        help="Browser für die Kamera im Headless-Modus starten",
    )
    parser.add_argument(
        "--fake-camera",
        action="store_true",
        help="Simulierte Kamera von Chromium verwenden",
    )
    parser.add_argument(
        "--clear",
        action="store_true",
        help="Logs und gespeichertes Theme löschen",
    )
    return parser


def parse_args() -> argparse.Namespace:
    return build_parser().parse_args()


def configure_utf8_output() -> None:
    """Switch console output to UTF-8 so that ``₹`` prices can be printed."""

    for stream in (sys.stdout, sys.stderr):
        reconfigure = getattr(stream, "reconfigure", None)
        # Ersetzte Streams (Tests, Umleitungen) bleiben unverändert
        if reconfigure is not None:
            reconfigure(encoding="utf-8", errors="replace")


def announce_theme(theme: Theme) -> None:
    print(f"[INFO] Theme: {theme.value}")


def format_listing(listing: Listing) -> str:
    return (
        f"{listing.display_price:>12}  {listing.title}  "
        f"[{listing.category} · {listing.condition.value}]  – {listing.seller_name}"
    )


def print_feed(feed: ListingFeed, query: str = "", order: str = SortOrder.NEWEST.value) -> int:
    view = feed.filter(query).sorted(order)
    count = 0
    for listing in view:
        print(format_listing(listing))
        count += 1
    if not count:
        print("Keine Anzeigen gefunden.")
    return count


def _manual_fields(args: argparse.Namespace) -> dict:
    fields = {}
    for name in ("title", "description", "price", "category", "condition"):
        value = getattr(args, name, None)
        if value is not None:
            fields[name] = value
    return fields


async def create_listing(
    feed: ListingFeed,
    session: Session,
    client: EnrichmentClient,
    args: argparse.Namespace,
    camera: Optional[CameraController] = None,
) -> Optional[Listing]:
    async with SellFlow(feed, session, client, camera) as flow:
        acquired = False
        if camera is not None and await flow.start_camera():
            acquired = await flow.capture_photo()
        if not acquired and args.image:
            acquired = await flow.upload_file(args.image)
        if acquired:
            await flow.wait_for_enrichment()

        flow.draft.update(**_manual_fields(args))
        listing = flow.submit()

        for notice in flow.notices:
            print(f"[{notice.level.upper()}] {notice.message}")
        if listing:
            print(f"[SUCCESS] Anzeige veröffentlicht: {listing.title}")
        return listing


async def _create_listing_with_camera(
    feed: ListingFeed,
    session: Session,
    client: EnrichmentClient,
    args: argparse.Namespace,
) -> Optional[Listing]:
    async with async_playwright() as playwright:
        try:
            browser, context = await launch_camera_context(
                playwright, headless=args.headless, fake_device=args.fake_camera
            )
        except PlaywrightError as exc:
            logger.warning("Browser für die Kamera konnte nicht gestartet werden: %s", exc)
            print("[WARNING] Kamera nicht verfügbar – es wird nur die Bilddatei verwendet.")
            return await create_listing(feed, session, client, args)

        try:
            async with CameraController(context) as camera:
                return await create_listing(feed, session, client, args, camera)
        finally:
            await browser.close()


async def run_once(args: argparse.Namespace) -> ListingFeed:
    theme = ThemeState.load(ThemeStore(args.theme_file), apply=announce_theme)
    if args.toggle_theme:
        theme.toggle()

    session = Session()
    if args.email or args.name:
        session.mock_login(args.email or "", args.name or "")

    feed = ListingFeed(demo_listings())

    if args.image or args.camera:
        client = EnrichmentClient(
            model=args.model,
            endpoint=args.endpoint,
            timeout=args.timeout,
            max_attempts=args.attempts,
        )
        if args.camera:
            await _create_listing_with_camera(feed, session, client, args)
        else:
            await create_listing(feed, session, client, args)

    print_feed(feed, args.search, args.sort)
    return feed


def clear_artifacts(theme_file: Path, log_dir: Path) -> None:
    """Delete the saved theme and the log files.

    The log directory itself is removed only when nothing but log files was
    in it.
    """

    theme_file.unlink(missing_ok=True)
    if not log_dir.is_dir():
        return

    kept = 0
    for entry in log_dir.iterdir():
        if entry.is_file():
            entry.unlink()
        else:
            kept += 1
    if kept:
        logger.info("Log-Verzeichnis %s bleibt bestehen (%s Unterordner).", log_dir, kept)
    else:
        log_dir.rmdir()


def main() -> None:
    args = parse_args()

    log_dir = Path(config.LOG_DIR)

    configure_utf8_output()

    if args.clear:
        clear_artifacts(Path(args.theme_file), log_dir)
        print("Logs und Theme wurden gelöscht.")
        return

    log_dir.mkdir(parents=True, exist_ok=True)
    configure_enrichment_logging(log_dir)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(log_dir / "campuselectronics.log", encoding="utf-8"),
            logging.StreamHandler(sys.stdout),
        ],
        force=True,
    )

    try:
        asyncio.run(run_once(args))
    except KeyboardInterrupt:  # pragma: no cover - user interruption path
        print("Abgebrochen.")


if __name__ == "__main__":  # pragma: no cover - entrypoint
    main()

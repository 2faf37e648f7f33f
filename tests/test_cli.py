import io
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
from PIL import Image
from playwright.async_api import Error as PlaywrightError

from campuselectronics import cli, config
from campuselectronics.feed import ListingFeed, demo_listings
from campuselectronics.models import AIAnalysisResult, Theme
from campuselectronics.session import Session, ThemeStore


def make_args(tmp_path, **overrides):
    args = SimpleNamespace(
        image=None,
        camera=False,
        title=None,
        description=None,
        price=None,
        category=None,
        condition=None,
        email=None,
        name=None,
        search="",
        sort="newest",
        toggle_theme=False,
        theme_file=str(tmp_path / "theme.json"),
        model=config.ENRICHMENT_MODEL,
        endpoint=config.ENRICHMENT_ENDPOINT,
        timeout=config.ENRICHMENT_TIMEOUT,
        attempts=1,
        headless=True,
        fake_camera=False,
        clear=False,
    )
    for key, value in overrides.items():
        setattr(args, key, value)
    return args


class FakeClient:
    def __init__(self, *args, **kwargs):  # noqa: ARG002
        self.kwargs = kwargs

    def enrich(self, payload):  # noqa: ARG002
        return AIAnalysisResult(
            title="Scientific Calculator",
            description="Casio fx-991EX, exam approved.",
            suggested_price=899.5,
            category="Calculators",
        )


def write_png(path: Path) -> Path:
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4)).save(buffer, format="PNG")
    path.write_bytes(buffer.getvalue())
    return path


def test_build_parser_defaults():
    args = cli.build_parser().parse_args([])
    assert args.model == config.ENRICHMENT_MODEL
    assert args.theme_file == config.THEME_FILE
    assert args.sort == "newest"
    assert args.camera is False
    assert args.image is None


def test_parser_accepts_camera_with_file_fallback():
    args = cli.build_parser().parse_args(["--camera", "--image", "x.png", "--condition", "Like New"])
    assert args.camera is True
    assert args.image == "x.png"
    assert args.condition == "Like New"


def test_parse_args_uses_defaults(monkeypatch):
    monkeypatch.setattr(sys, "argv", ["prog"])
    args = cli.parse_args()
    assert args.timeout == config.ENRICHMENT_TIMEOUT


def test_configure_utf8_output_handles_missing_reconfigure(monkeypatch):
    stream = SimpleNamespace()
    monkeypatch.setattr(sys, "stdout", stream)
    monkeypatch.setattr(sys, "stderr", stream)
    cli.configure_utf8_output()


def test_configure_utf8_output_reconfigures_streams(monkeypatch):
    calls = []
    stream = SimpleNamespace(reconfigure=lambda **kwargs: calls.append(kwargs))
    monkeypatch.setattr(sys, "stdout", stream)
    monkeypatch.setattr(sys, "stderr", stream)

    cli.configure_utf8_output()

    assert calls == [{"encoding": "utf-8", "errors": "replace"}] * 2


def test_print_feed_filters_and_reports_empty(capsys):
    feed = ListingFeed(demo_listings(now_ms=0))

    assert cli.print_feed(feed, "audio") == 1
    out = capsys.readouterr().out
    assert "Sony WH-1000XM4 Headphones" in out
    assert "₹15,000" in out

    assert cli.print_feed(feed, "drohne") == 0
    assert "Keine Anzeigen gefunden." in capsys.readouterr().out


def test_print_feed_sorted_by_price(capsys):
    feed = ListingFeed(demo_listings(now_ms=0))
    cli.print_feed(feed, "", "price-asc")
    lines = capsys.readouterr().out.splitlines()
    assert "Mechanical Keyboard RGB" in lines[0]
    assert "iPad Air" in lines[-1]


@pytest.mark.asyncio
async def test_run_once_toggles_theme_and_prints_feed(tmp_path, capsys):
    args = make_args(tmp_path, toggle_theme=True)
    feed = await cli.run_once(args)

    assert len(feed) == 3
    assert ThemeStore(args.theme_file).read() is Theme.DARK
    out = capsys.readouterr().out
    assert out.index("[INFO] Theme: light") < out.index("[INFO] Theme: dark")
    assert "iPad Air 4th Gen 64GB" in out


@pytest.mark.asyncio
async def test_run_once_publishes_uploaded_image(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr(cli, "EnrichmentClient", FakeClient)
    args = make_args(
        tmp_path,
        image=str(write_png(tmp_path / "calc.png")),
        email="asha@campus.edu",
        name="Asha",
        condition="Like New",
        search="calc",
    )

    feed = await cli.run_once(args)

    newest = next(iter(feed))
    assert newest.title == "Scientific Calculator"
    assert newest.price == 900.0
    assert newest.seller_name == "Asha"
    assert newest.condition.value == "Like New"
    out = capsys.readouterr().out
    assert "[SUCCESS] Anzeige veröffentlicht: Scientific Calculator" in out
    assert "Sony" not in out


class DummyPlaywright:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


@pytest.mark.asyncio
async def test_run_once_falls_back_to_file_when_browser_is_missing(tmp_path, monkeypatch, capsys):
    async def broken_launch(playwright, **kwargs):  # noqa: ARG001
        raise PlaywrightError("Executable doesn't exist")

    monkeypatch.setattr(cli, "EnrichmentClient", FakeClient)
    monkeypatch.setattr(cli, "async_playwright", DummyPlaywright)
    monkeypatch.setattr(cli, "launch_camera_context", broken_launch)
    args = make_args(tmp_path, camera=True, image=str(write_png(tmp_path / "x.png")))

    feed = await cli.run_once(args)

    assert len(feed) == 4
    assert next(iter(feed)).title == "Scientific Calculator"
    out = capsys.readouterr().out
    assert "Kamera nicht verfügbar" in out
    assert "[SUCCESS] Anzeige veröffentlicht: Scientific Calculator" in out


@pytest.mark.asyncio
async def test_create_listing_applies_manual_overrides(tmp_path):
    feed = ListingFeed()
    args = make_args(tmp_path, image=str(write_png(tmp_path / "a.png")), title="Eigener Titel", price="450")

    listing = await cli.create_listing(feed, Session(), FakeClient(), args)

    assert listing.title == "Eigener Titel"
    assert listing.price == 450.0
    assert listing.category == "Calculators"


@pytest.mark.asyncio
async def test_create_listing_without_image_reports_warning(tmp_path, capsys):
    feed = ListingFeed()
    listing = await cli.create_listing(feed, Session(), FakeClient(), make_args(tmp_path))

    assert listing is None
    assert len(feed) == 0
    assert "[WARNING]" in capsys.readouterr().out


def test_clear_artifacts(tmp_path):
    theme_file = tmp_path / "theme.json"
    theme_file.write_text("{}")
    log_dir = tmp_path / "log"
    log_dir.mkdir()
    (log_dir / "a.log").write_text("log")

    cli.clear_artifacts(theme_file, log_dir)
    assert not theme_file.exists()
    assert not log_dir.exists()


def test_clear_artifacts_keeps_directory_with_subfolders(tmp_path):
    log_dir = tmp_path / "log"
    (log_dir / "archiv").mkdir(parents=True)
    (log_dir / "campuselectronics.log").write_text("log")

    cli.clear_artifacts(tmp_path / "missing.json", log_dir)

    assert log_dir.is_dir()
    assert [entry.name for entry in log_dir.iterdir()] == ["archiv"]


def test_main_clear(monkeypatch, tmp_path):
    called = {}
    args = make_args(tmp_path, clear=True)

    monkeypatch.setattr(cli, "parse_args", lambda: args)
    monkeypatch.setattr(cli, "configure_utf8_output", lambda: called.setdefault("utf8", True))
    monkeypatch.setattr(
        cli, "configure_enrichment_logging", lambda log_dir: called.setdefault("logging", log_dir)
    )
    monkeypatch.setattr(
        cli, "clear_artifacts", lambda theme_file, log_dir: called.setdefault("cleared", (theme_file, log_dir))
    )

    cli.main()

    assert called["cleared"][0] == Path(args.theme_file)
    assert "logging" not in called


def test_main_runs_once(monkeypatch, tmp_path):
    called = {}
    args = make_args(tmp_path)

    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli, "parse_args", lambda: args)
    monkeypatch.setattr(cli, "configure_utf8_output", lambda: None)
    monkeypatch.setattr(
        cli, "configure_enrichment_logging", lambda log_dir: called.setdefault("io_log", log_dir)
    )
    monkeypatch.setattr(cli.logging, "basicConfig", lambda **kwargs: called.setdefault("logging", kwargs))
    monkeypatch.setattr(cli, "run_once", lambda args: "done")
    monkeypatch.setattr(cli.asyncio, "run", lambda coro: called.setdefault("ran", coro))

    cli.main()

    assert called["ran"] == "done"
    assert called["io_log"] == Path(config.LOG_DIR)
    assert called["logging"]["force"] is True

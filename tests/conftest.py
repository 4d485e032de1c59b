# tests/conftest.py
import json
import os
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone

import pytest
from freezegun import freeze_time

from modules.job_watch.lib import config as jw_config
from modules.job_watch.lib.rendering.base import Renderer, RendererError
from modules.job_watch.lib.rendering.static import cards_from_html


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (real browser and network).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "live: marks tests that launch a real browser or hit external sites (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch):
    # Write logs to a throwaway dir so real logs stay clean (per test)
    tmp_logs = tempfile.mkdtemp(prefix="jw-pytest-logs-")
    monkeypatch.setenv("LOG_DIR", tmp_logs)
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")
    monkeypatch.delenv("LOG_DISABLE", raising=False)
    monkeypatch.delenv("CONFIG_PATH", raising=False)
    yield


# Fixed clock used across the suite.
NOW = datetime(2025, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def frozen_utc():
    with freeze_time("2025-03-10T12:00:00Z"):
        yield NOW


# ---------------------------------------------------------------------
# Sites / settings
# ---------------------------------------------------------------------
SITES_HEADER = "url,job_card_selector,title_selector,date_selector,link_selector,location_selector,site,company"


@pytest.fixture
def write_sites_csv(tmp_path):
    """Factory: write the given data rows under the standard header and return the path."""

    def _write(*rows: str, header: str = SITES_HEADER, name: str = "sites.csv") -> str:
        p = tmp_path / name
        p.write_text("\n".join([header, *rows]) + "\n", encoding="utf-8")
        return str(p)

    return _write


@pytest.fixture
def sites_csv(write_sites_csv):
    return write_sites_csv(
        "https://x.com/jobs,.card,.title,.date,a,,,",
        "https://www.getonbrd.com/empleos,.gb-card,.gb-title,.gb-date,a,.gb-location,,",
    )


@pytest.fixture
def fresh_settings(sites_csv, tmp_path):
    """
    Return a **brand-new** Settings instance for *each* test.
    - sites file: the temp CSV created above
    - DB file: a fresh per-test SQLite file
    - no politeness delay
    """
    return jw_config.Settings.from_env_and_kwargs({
        "sites_path": sites_csv,
        "sqlite_path": str(tmp_path / "jobwatch.db"),
        "renderer": "static",
        "site_delay_seconds": 0,
    })


# ---------------------------------------------------------------------
# HTML-fixture renderer
# ---------------------------------------------------------------------
class HtmlFixtureRenderer(Renderer):
    """
    Serves canned HTML per site URL through the static renderer's
    BeautifulSoup elements. A value that is an Exception is raised as a
    navigation failure for that site.
    """

    name = "fixture"

    def __init__(self, pages: dict[str, object]) -> None:
        self.pages = pages
        self.started = False
        self.closed = False
        self.opened: list[tuple[str, bool]] = []

    def start(self) -> None:
        self.started = True

    def close(self) -> None:
        self.closed = True

    @contextmanager
    def open_cards(self, site, *, scroll_to_load=False):
        self.opened.append((site.url, scroll_to_load))
        page = self.pages.get(site.url, "")
        if isinstance(page, Exception):
            raise RendererError(f"navigation failed for {site.url}: {page}")
        yield cards_from_html(str(page), site.card_selector)


@pytest.fixture
def html_renderer():
    return HtmlFixtureRenderer


@pytest.fixture
def write_schedule_config(tmp_path, monkeypatch):
    """Factory: write a schedule config (JSON) and point CONFIG_PATH at it."""

    def _write(cfg: dict, name: str = "config.json") -> str:
        p = tmp_path / name
        p.write_text(json.dumps(cfg), encoding="utf-8")
        monkeypatch.setenv("CONFIG_PATH", str(p))
        return str(p)

    return _write

# tests/test_config.py
import logging
import pathlib

import pytest

from modules.job_watch.lib import config as jw_config


def test_load_sites_reads_rows_and_infers_policy(sites_csv):
    sites = jw_config.load_sites(sites_csv)

    assert [s.url for s in sites] == ["https://x.com/jobs", "https://www.getonbrd.com/empleos"]
    x, gob = sites
    assert x.card_selector == ".card"
    assert x.location_selector is None
    assert x.site == "default"
    assert x.company is None
    assert gob.site == "getonbrd"
    assert gob.location_selector == ".gb-location"


def test_load_sites_skips_incomplete_rows_with_warning(write_sites_csv, caplog):
    path = write_sites_csv(
        "https://ok.com/jobs,.card,.t,.d,a,,,",
        "https://broken.com/jobs,.card,,.d,a,,,",
        " , , , , ,,,",
        "https://also-ok.com/jobs , .card , .t , .d , a , .loc , LinkedIn , Also OK ",
    )
    with caplog.at_level(logging.WARNING, logger="modules.job_watch.lib.config"):
        sites = jw_config.load_sites(path)

    assert [s.url for s in sites] == ["https://ok.com/jobs", "https://also-ok.com/jobs"]
    last = sites[1]
    assert last.site == "linkedin"
    assert last.company == "Also OK"
    assert last.location_selector == ".loc"
    assert "row 3" in caplog.text
    assert "title_selector" in caplog.text


def test_load_sites_minimal_header(write_sites_csv):
    path = write_sites_csv(
        "https://linkedin.com/jobs,.c,.t,.d,a",
        header="url,job_card_selector,title_selector,date_selector,link_selector",
    )
    (site,) = jw_config.load_sites(path)
    assert site.site == "linkedin"
    assert site.location_selector is None


def test_load_sites_empty_file_is_not_an_error(write_sites_csv):
    assert jw_config.load_sites(write_sites_csv()) == []


def test_load_sites_missing_file(tmp_path):
    with pytest.raises(jw_config.ConfigError):
        jw_config.load_sites(str(tmp_path / "missing.csv"))


@pytest.mark.parametrize(
    "url, kind",
    [
        ("https://www.getonbrd.com/jobs", "getonbrd"),
        ("https://ar.linkedin.com/jobs/search", "linkedin"),
        ("https://careers.acme.io", "default"),
    ],
)
def test_infer_site_kind(url, kind):
    assert jw_config.infer_site_kind(url) == kind


# ----------------------------------------------------------------------
# Settings
# ----------------------------------------------------------------------
def test_settings_defaults(sites_csv):
    s = jw_config.Settings.from_env_and_kwargs({"sites_path": sites_csv})
    assert s.renderer == "playwright"
    assert s.headless is True
    assert s.max_age_days == 7
    assert s.site_delay_seconds == 1.0
    assert s.nav_timeout_ms == 60_000
    assert s.card_timeout_ms == 15_000
    assert s.scroll_max == 5
    assert s.skip_network is False
    assert len(s.sites()) == 2


def test_settings_coerces_strings(sites_csv):
    s = jw_config.Settings.from_env_and_kwargs({
        "sites_path": sites_csv,
        "renderer": " STATIC ",
        "headless": "false",
        "max_age_days": "3",
        "site_delay_seconds": "0.5",
        "skip_network": "yes",
    })
    assert s.renderer == "static"
    assert s.headless is False
    assert s.max_age_days == 3
    assert s.site_delay_seconds == 0.5
    assert s.skip_network is True


@pytest.mark.parametrize(
    "override",
    [
        {"renderer": "selenium"},
        {"max_age_days": -1},
        {"max_age_days": "soon"},
        {"site_delay_seconds": -2},
        {"site_delay_seconds": "slow"},
        {"scroll_max": -1},
        {"nav_timeout_ms": -5},
    ],
)
def test_settings_rejects_invalid_values(sites_csv, override):
    with pytest.raises(jw_config.ConfigError):
        jw_config.Settings.from_env_and_kwargs({"sites_path": sites_csv, **override})


def test_settings_rejects_unknown_site_policy(write_sites_csv):
    path = write_sites_csv("https://x.com/jobs,.card,.t,.d,a,,indeed,")
    with pytest.raises(jw_config.ConfigError, match="indeed"):
        jw_config.Settings.from_env_and_kwargs({"sites_path": path})


def test_example_files_load():
    root = pathlib.Path(__file__).resolve().parent.parent / "config"
    sites = jw_config.load_sites(str(root / "sites.example.csv"))
    assert [s.site for s in sites] == ["getonbrd", "linkedin"]
    assert sites[0].link_selector == "."

    from service import config_schema

    cfg = config_schema.load_config(str(root / "config.example.json"))
    config_schema.validate(cfg)


def test_load_sites_accepts_byte_order_mark(tmp_path):
    path = tmp_path / "sites.csv"
    path.write_text(
        "\ufeff" + "url,job_card_selector,title_selector,date_selector,link_selector\n"
        "https://x.com/jobs,.card,.t,.d,a\n",
        encoding="utf-8",
    )
    (site,) = jw_config.load_sites(str(path))
    assert site.url == "https://x.com/jobs"

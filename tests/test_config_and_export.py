from __future__ import annotations

import json

import pytest

from utils import common
from utils.config_loader import collector_settings, load_config, merge_settings
from utils.export import PageFileSink, export_results
from utils.models import CollectorSettings, Issue
from utils.normalizers import endpoint_slug


def test_load_toml_config(tmp_path):
    path = tmp_path / "settings.toml"
    path.write_text('[collector]\nmax_concurrency = 10\ndispatch_delay = 0.5\n', encoding="utf-8")

    assert load_config(str(path)) == {"collector": {"max_concurrency": 10, "dispatch_delay": 0.5}}


def test_load_yaml_config(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("collector:\n  warning_limit: 500\n", encoding="utf-8")

    assert load_config(str(path)) == {"collector": {"warning_limit": 500}}


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("JIRA_CLOUD_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    return home


def test_default_config_discovered_in_cwd(tmp_path, isolated_config):
    (tmp_path / ".jiracloud.toml").write_text('[logging]\njson = true\n', encoding="utf-8")

    assert load_config() == {"logging": {"json": True}}


def test_missing_config_is_empty(isolated_config):
    assert load_config() == {}


def test_home_config_used_when_cwd_has_none(isolated_config):
    (isolated_config / ".jiracloud.yaml").write_text("http:\n  timeout: 5\n", encoding="utf-8")

    assert load_config() == {"http": {"timeout": 5}}


def test_cwd_config_wins_over_home(tmp_path, isolated_config):
    (isolated_config / ".jiracloud.toml").write_text("[http]\ntimeout = 5\n", encoding="utf-8")
    (tmp_path / ".jiracloud.toml").write_text("[http]\ntimeout = 9\n", encoding="utf-8")

    assert load_config() == {"http": {"timeout": 9}}


def test_config_path_from_environment(tmp_path, isolated_config, monkeypatch):
    path = tmp_path / "team.toml"
    path.write_text("[collector]\npage_size = 50\n", encoding="utf-8")
    monkeypatch.setenv("JIRA_CLOUD_CONFIG", str(path))

    assert load_config() == {"collector": {"page_size": 50}}


def test_named_config_must_exist(tmp_path, isolated_config, monkeypatch):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "absent.toml"))
    monkeypatch.setenv("JIRA_CLOUD_CONFIG", str(tmp_path / "absent.yaml"))
    with pytest.raises(FileNotFoundError):
        load_config()


def test_unsupported_config_format(tmp_path):
    path = tmp_path / "settings.ini"
    path.write_text("[collector]\n", encoding="utf-8")

    with pytest.raises(RuntimeError):
        load_config(str(path))


def test_broken_config_raises(tmp_path):
    path = tmp_path / "broken.toml"
    path.write_text("[collector\n", encoding="utf-8")

    with pytest.raises(RuntimeError):
        load_config(str(path))


def test_merge_settings_overlay_wins():
    base = {"collector": {"max_concurrency": 100, "page_size": 100}, "logging": {"json": False}}
    merged = merge_settings(base, {"collector": {"max_concurrency": 5}})

    assert merged["collector"] == {"max_concurrency": 5, "page_size": 100}
    assert base["collector"]["max_concurrency"] == 100


def test_collector_settings_from_config():
    settings = collector_settings({"collector": {"max_concurrency": 5, "field_selector": "*all,-comment", "unknown": 1}})

    assert settings.max_concurrency == 5
    assert settings.field_selector == ("*all", "-comment")
    assert settings.page_size == 100
    assert collector_settings({}) == CollectorSettings()


@pytest.mark.parametrize(
    "section",
    [
        {"page_size": 0},
        {"page_size": -100},
        {"page_size": 2.5},
        {"max_concurrency": 0},
        {"max_concurrency": -1},
        {"dispatch_delay": -0.5},
        {"rate_limit_interval": -1},
        {"warning_limit": -1},
        {"rate_limit_max_attempts": 0},
        {"field_selector": ""},
    ],
)
def test_invalid_collector_section_rejected(section):
    with pytest.raises(ValueError, match=r"\[collector\]"):
        collector_settings({"collector": section})


def test_collector_settings_validated_on_construction():
    with pytest.raises(ValueError):
        CollectorSettings(page_size=0)
    with pytest.raises(ValueError):
        CollectorSettings(max_concurrency=0)
    assert CollectorSettings(dispatch_delay=0).dispatch_delay == 0


def test_jira_session_from_env(monkeypatch):
    monkeypatch.delenv("JIRA_CLOUD_BEARER_TOKEN", raising=False)
    monkeypatch.setenv("JIRA_CLOUD_EMAIL", "bot@acme.test")
    monkeypatch.setenv("JIRA_CLOUD_API_TOKEN", "tok")

    api = common.jira_session("https://acme.atlassian.net")

    assert api.base_url == "https://acme.atlassian.net"
    assert api.auth_header.startswith("Basic ")


def test_jira_session_prefers_bearer(monkeypatch):
    monkeypatch.setenv("JIRA_CLOUD_BEARER_TOKEN", "oauth-token")

    assert common.jira_session("https://acme.atlassian.net").auth_header == "Bearer oauth-token"


def test_missing_credentials_raise(monkeypatch):
    for name in ("JIRA_CLOUD_BEARER_TOKEN", "JIRA_CLOUD_EMAIL", "JIRA_CLOUD_API_TOKEN", "OPSGENIE_API_KEY"):
        monkeypatch.delenv(name, raising=False)

    with pytest.raises(RuntimeError):
        common.jira_session("https://acme.atlassian.net")
    with pytest.raises(RuntimeError):
        common.opsgenie_session()


def test_endpoint_slug():
    assert endpoint_slug("https://acme.atlassian.net/") == "acme-atlassian-net"
    assert endpoint_slug("https://api.opsgenie.com") == "api-opsgenie-com"


def test_sink_writes_projection(tmp_path):
    sink = PageFileSink(tmp_path / "pages", "https://acme.atlassian.net", timestamp="T1")

    path = sink.write(300, [Issue("OPS-1", {"summary": "a"})])

    assert path.name == "acme-atlassian-net_T1_300.json"
    assert json.loads(path.read_text(encoding="utf-8")) == [{"key": "OPS-1", "fields": {"summary": "a"}}]


def test_export_results(tmp_path):
    out = export_results([Issue("OPS-1"), Issue("OPS-2", {"x": 1})], tmp_path / "all.json")

    assert json.loads(out.read_text(encoding="utf-8")) == [
        {"key": "OPS-1", "fields": {}},
        {"key": "OPS-2", "fields": {"x": 1}},
    ]

"""Tests for config creation, loading and overrides."""

import argparse
import json

import pytest

from core.config import (
    fncApplyCliOverrides,
    fncDefaultConfig,
    fncGetProviderConfig,
    fncInitConfig,
    fncIsDebug,
    fncLoadConfig,
)


@pytest.fixture(autouse=True)
def _clear_entra_env(monkeypatch):
    for name in ("ENTRA_TENANT_ID", "ENTRA_CLIENT_ID", "ENTRA_CLIENT_SECRET"):
        monkeypatch.delenv(name, raising=False)


def _cli(**values):
    base = {"debug": False, "role_filter": None, "parallel": None, "strict": False}
    base.update(values)
    return argparse.Namespace(**base)


class TestInitConfig:
    def test_creates_default_file(self, tmp_path):
        path = tmp_path / "cfg" / "config.json"

        cfg = fncInitConfig(str(path))

        assert path.exists()
        assert cfg["report"]["role_filter"] == "admin"
        assert json.loads(path.read_text(encoding="utf-8")) == fncDefaultConfig()

    def test_loads_existing_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"debug": True, "report": {"role_filter": "reader"}}), encoding="utf-8")

        cfg = fncInitConfig(str(path))

        assert fncIsDebug(cfg) is True
        assert cfg["report"]["role_filter"] == "reader"
        # sections missing from the file keep their defaults
        assert cfg["report"]["parallel"] == 1
        assert fncGetProviderConfig(cfg, "entra")["authority"] == "https://login.microsoftonline.com"


class TestEnvironmentOverrides:
    def test_env_wins_over_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"providers": {"entra": {"tenant_id": "from-file"}}}), encoding="utf-8")
        monkeypatch.setenv("ENTRA_TENANT_ID", "'from-env'")

        cfg = fncLoadConfig(str(path))

        assert cfg["providers"]["entra"]["tenant_id"] == "from-env"

    def test_unreadable_file_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json", encoding="utf-8")

        cfg = fncLoadConfig(str(path))

        assert cfg["report"]["role_filter"] == "admin"


class TestCliOverrides:
    def test_unset_flags_keep_config(self):
        cfg = fncApplyCliOverrides(fncDefaultConfig(), _cli())

        assert cfg["report"] == {"role_filter": "admin", "parallel": 1, "strict": False}
        assert fncIsDebug(cfg) is False

    def test_flags_override_config(self):
        cfg = fncApplyCliOverrides(
            fncDefaultConfig(), _cli(debug=True, role_filter="global", parallel=4, strict=True)
        )

        assert cfg["report"] == {"role_filter": "global", "parallel": 4, "strict": True}
        assert fncIsDebug(cfg) is True

    def test_parallel_is_at_least_one(self):
        cfg = fncApplyCliOverrides(fncDefaultConfig(), _cli(parallel=0))

        assert cfg["report"]["parallel"] == 1

    def test_unknown_provider(self):
        assert fncGetProviderConfig(fncDefaultConfig(), "aws") == {}

"""Tests for warble.build.env: build-time constants from .env files."""

from pathlib import Path
from unittest.mock import MagicMock

from warble.build.env import env_file_names, load_build_env


class TestEnvFileNames:
    def test_names(self) -> None:
        assert env_file_names("staging") == (".env", ".env.staging")


class TestLoadBuildEnv:
    def test_defaults(self, site: Path) -> None:
        values = load_build_env(site, production=False, environ={})
        assert values["WARBLE_ENV"] == "development"
        assert values["PUBLIC_DIR"] == str(site / "public")

    def test_production_default(self, site: Path) -> None:
        assert load_build_env(site, production=True, environ={})["WARBLE_ENV"] == "production"

    def test_precedence(self, site: Path, write_file) -> None:
        write_file(site, ".env", "A=base\nB=base\nC=base\n")
        write_file(site, ".env.development", "B=dev\nC=dev\n")

        values = load_build_env(site, production=False, environ={"C": "process"})

        assert values["A"] == "base"
        assert values["B"] == "dev"
        assert values["C"] == "process"

    def test_active_env_selects_file(self, site: Path, write_file) -> None:
        write_file(site, ".env.development", "API=dev\n")
        write_file(site, ".env.staging", "API=staging\n")

        values = load_build_env(site, production=False, environ={"WARBLE_ACTIVE_ENV": "staging"})

        assert values["API"] == "staging"
        assert values["WARBLE_ENV"] == "development"

    def test_reserved_keys_cannot_be_overridden(self, site: Path, write_file) -> None:
        write_file(site, ".env", "PUBLIC_DIR=/elsewhere\nWARBLE_ENV=bogus\n")

        values = load_build_env(site, production=True, environ={"PUBLIC_DIR": "/also/elsewhere"})

        assert values["PUBLIC_DIR"] == str(site / "public")
        assert values["WARBLE_ENV"] == "production"

    def test_warble_env_from_process(self, site: Path, write_file) -> None:
        write_file(site, ".env.test", "MODE=test\n")

        values = load_build_env(site, production=True, environ={"WARBLE_ENV": "test"})

        assert values["WARBLE_ENV"] == "test"
        assert values["MODE"] == "test"

    def test_explicit_public_dir(self, site: Path) -> None:
        values = load_build_env(site, production=False, public_dir="/srv/public", environ={})
        assert values["PUBLIC_DIR"] == "/srv/public"

    def test_unreadable_file_reported_and_skipped(self, site: Path, write_file) -> None:
        (site / ".env").write_bytes(b"A=\xff\xfe\n")
        write_file(site, ".env.development", "B=dev\n")
        reporter = MagicMock()

        values = load_build_env(site, production=False, environ={}, reporter=reporter)

        reporter.error.assert_called_once()
        assert "problem processing the .env file" in reporter.error.call_args[0][0]
        assert "A" not in values
        assert values["B"] == "dev"

    def test_keys_without_value_are_dropped(self, site: Path, write_file) -> None:
        write_file(site, ".env", "EMPTY\nSET=1\n")
        values = load_build_env(site, production=False, environ={})
        assert "EMPTY" not in values
        assert values["SET"] == "1"

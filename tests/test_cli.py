"""Tests for the command-line entry point."""

from __future__ import annotations

import logging

import pytest

from mediashare import cli


class TestParser:
    def test_defaults(self):
        args = cli.build_parser().parse_args([])
        assert args.host == "127.0.0.1"
        assert args.port == 3000
        assert args.config_path is None
        assert args.log_level == "info"

    def test_flags(self):
        args = cli.build_parser().parse_args(
            ["--host", "0.0.0.0", "--port", "8080", "--config-path", "c.yaml", "--log-level", "debug"]
        )
        assert (args.host, args.port, args.config_path, args.log_level) == (
            "0.0.0.0",
            8080,
            "c.yaml",
            "debug",
        )

    def test_bad_log_level(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["--log-level", "loud"])


class TestMain:
    def test_runs_uvicorn(self, tmp_path, monkeypatch):
        config = tmp_path / "config.yaml"
        config.write_text(f"mediaDir: {tmp_path}\ndataDir: {tmp_path}\n")
        calls = {}

        def fake_run(app, **kwargs):
            calls["app"] = app
            calls.update(kwargs)

        monkeypatch.setattr(cli.uvicorn, "run", fake_run)
        monkeypatch.setattr(logging, "basicConfig", lambda **kw: None)
        cli.main(["--config-path", str(config), "--port", "9000"])

        assert calls["port"] == 9000
        assert calls["host"] == "127.0.0.1"
        assert calls["app"].title == "mediashare"

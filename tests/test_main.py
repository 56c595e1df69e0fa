"""Tests for the command-line entry point."""

from unittest.mock import patch

import pytest

from rag_llm_server.errors import ConfigurationError
from rag_llm_server.main import build_parser, main


class TestBuildParser:
    def test_serve_defaults(self):
        args = build_parser().parse_args(["serve"])
        assert args.host == "0.0.0.0"
        assert args.port == 8000
        assert args.metadata_store is None
        assert args.ocr is False

    def test_serve_backends(self):
        args = build_parser().parse_args(
            ["serve", "--metadata-store", "memory", "--vector-store", "memory", "--port", "9000"]
        )
        assert args.metadata_store == "memory"
        assert args.vector_store == "memory"
        assert args.port == 9000

    def test_serve_ocr_flag(self):
        assert build_parser().parse_args(["serve", "--ocr"]).ocr is True

    def test_invalid_backend(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["serve", "--vector-store", "qdrant"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_migrate_dir(self):
        args = build_parser().parse_args(["migrate", "--migrations-dir", "/tmp/m"])
        assert args.migrations_dir == "/tmp/m"


class TestMain:
    def test_errors_return_exit_code(self, capsys):
        with patch(
            "rag_llm_server.main._reconcile", side_effect=ConfigurationError("bad settings")
        ):
            assert main(["reconcile"]) == 1
        assert "bad settings" in capsys.readouterr().err

    def test_success_returns_zero(self):
        with patch("rag_llm_server.main._migrate", return_value=0) as migrate:
            assert main(["migrate"]) == 0
        assert migrate.call_args.args[0].migrations_dir == "migrations"

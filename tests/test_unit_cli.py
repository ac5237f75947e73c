"""Unit tests for the console script wrappers."""

import json
import subprocess
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from cli import dev, openapi
from cli import test as test_cli


def _completed(code: int) -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=code)


def test_dev_starts_uvicorn_with_extra_args(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys, "argv", ["fieldops-dev", "--port", "9000"])

    with patch("cli._runner.subprocess.run", return_value=_completed(0)) as mock_run:
        with pytest.raises(SystemExit) as exc_info:
            dev.main()

    cmd = mock_run.call_args.args[0]
    assert cmd[1:4] == ["-m", "uvicorn", "fieldops.main:app"]
    assert cmd[-2:] == ["--port", "9000"]
    assert exc_info.value.code == 0


def test_test_wrapper_propagates_exit_code(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys, "argv", ["fieldops-test", "-k", "filters"])

    with patch("cli._runner.subprocess.run", return_value=_completed(3)) as mock_run:
        with pytest.raises(SystemExit) as exc_info:
            test_cli.main()

    assert mock_run.call_args.args[0][1:] == ["-m", "pytest", "-q", "-k", "filters"]
    assert exc_info.value.code == 3


def test_openapi_writes_document(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    output = tmp_path / "nested" / "openapi.json"
    monkeypatch.setattr(sys, "argv", ["fieldops-openapi", str(output)])

    openapi.main()

    schema = json.loads(output.read_text(encoding="utf-8"))
    assert schema["info"]["title"] == "Field Operations API"
    assert "/api/v1/records/{entity}" in schema["paths"]
    assert "/api/v1/records/{entity}/{record_id}" in schema["paths"]

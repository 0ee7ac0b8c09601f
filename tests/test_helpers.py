"""Tests for firmapdf.ui.helpers -- CLI input/output helpers."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from firmapdf.ui.helpers import (
    atomic_write,
    default_output_path,
    format_size_kb,
    prompt_password,
    safe_read_file,
)

# ── safe_read_file ────────────────────────────────────────────────


def test_safe_read_file_success(tmp_path: Path):
    f = tmp_path / "contrato.pdf"
    f.write_bytes(b"PDF content")
    assert safe_read_file(f, "PDF") == b"PDF content"


def test_safe_read_file_not_found(tmp_path: Path, capsys: pytest.CaptureFixture[str]):
    result = safe_read_file(tmp_path / "missing.cer", "certificate")
    assert result is None
    assert "certificate not found" in capsys.readouterr().err


def test_safe_read_file_read_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]):
    f = tmp_path / "contrato.pdf"
    f.write_bytes(b"data")
    with patch.object(Path, "read_bytes", side_effect=OSError("permission denied")):
        result = safe_read_file(f, "PDF")
    assert result is None
    assert "permission denied" in capsys.readouterr().err


# ── default_output_path / format_size_kb ──────────────────────────


def test_default_output_path():
    assert default_output_path(Path("/tmp/doc.pdf")) == Path("/tmp/doc_signed.pdf")


def test_default_output_path_preserves_directory():
    p = Path("/home/user/contratos/arrendamiento.pdf")
    assert default_output_path(p) == Path("/home/user/contratos/arrendamiento_signed.pdf")


def test_format_size_kb():
    assert format_size_kb(1024) == "1.0 KB"
    assert format_size_kb(0) == "0.0 KB"
    assert format_size_kb(2560) == "2.5 KB"


# ── prompt_password ───────────────────────────────────────────────


def test_prompt_password_explicit_wins(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("FIRMAPDF_PASSWORD", "from-env")
    assert prompt_password("explicit") == "explicit"


def test_prompt_password_uses_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("FIRMAPDF_PASSWORD", "from-env")
    with patch("getpass.getpass") as mock_getpass:
        assert prompt_password() == "from-env"
    mock_getpass.assert_not_called()


def test_prompt_password_prompts():
    with patch("getpass.getpass", return_value="typed") as mock_getpass:
        assert prompt_password(label="PFX password") == "typed"
    mock_getpass.assert_called_once_with("PFX password: ")


@pytest.mark.parametrize("side_effect", [EOFError, KeyboardInterrupt])
def test_prompt_password_exits_on_cancel(side_effect: type[BaseException]):
    with patch("getpass.getpass", side_effect=side_effect), pytest.raises(SystemExit):
        prompt_password()


def test_prompt_password_exits_on_empty(capsys: pytest.CaptureFixture[str]):
    with patch("getpass.getpass", return_value=""), pytest.raises(SystemExit):
        prompt_password()
    assert "password is required" in capsys.readouterr().err


# ── atomic_write ──────────────────────────────────────────────────


def test_atomic_write_success(tmp_path: Path):
    target = tmp_path / "output.pdf"
    atomic_write(target, b"signed PDF content")
    assert target.read_bytes() == b"signed PDF content"
    assert not list(tmp_path.glob("*.tmp"))


def test_atomic_write_no_partial_on_error(tmp_path: Path):
    target = tmp_path / "output.pdf"
    with (
        patch("os.write", side_effect=OSError("disk full")),
        pytest.raises(OSError, match="disk full"),
    ):
        atomic_write(target, b"data")
    assert not target.exists()
    assert not list(tmp_path.glob("*.tmp"))

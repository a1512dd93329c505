"""Pytest configuration for the `tests/` suite.

Puts the repository root on `sys.path` so the suite runs without an
editable install, and isolates every test from the user's real settings,
sessions and API key.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest


def _prepend_sys_path(path: Path) -> None:
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)


_REPO_ROOT = Path(__file__).resolve().parents[1]
_prepend_sys_path(_REPO_ROOT)


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Point config and session directories at a temp dir, drop the real key."""
    monkeypatch.setenv("TERMTUTOR_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("TERMTUTOR_SESSION_DIR", str(tmp_path / "sessions"))
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)


def gemini_payload(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def sse_event(text: str) -> bytes:
    return f"data: {json.dumps(gemini_payload(text))}\r\n\r\n".encode()


def build_response(status: int = 200, payload=None, chunks=None) -> MagicMock:
    """A stand-in for `requests.Response` usable as a context manager."""
    response = MagicMock()
    response.status_code = status
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    if payload is None:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = payload
    response.iter_content.return_value = iter(chunks or [])
    return response


@pytest.fixture
def make_response():
    return build_response


@pytest.fixture
def reply_payload():
    return gemini_payload


@pytest.fixture
def sse():
    return sse_event

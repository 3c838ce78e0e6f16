import sys
import os

import pytest

# Ensure the project root is in sys.path so `from fluxoscribe.main import app`
# works without installing the package
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from fluxoscribe import main  # noqa: E402
from fluxoscribe.session import PreviewStore, SessionRegistry, TranscriptionSession  # noqa: E402


@pytest.fixture
def registry(monkeypatch):
    """Fresh in-memory registry swapped into the application."""
    fresh = SessionRegistry()
    monkeypatch.setattr(main, "registry", fresh)
    return fresh


@pytest.fixture
def previews():
    return PreviewStore("/api/sessions/test/media")


@pytest.fixture
def transitions():
    return []


@pytest.fixture
def session(previews, transitions):
    """Session recording every status it moves through."""
    return TranscriptionSession("test", previews, on_change=transitions.append)

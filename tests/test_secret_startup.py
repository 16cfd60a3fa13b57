"""
tests/test_secret_startup.py — Signing Secret Validation at Startup
====================================================================
The API must refuse to start when JWT_SECRET or SESSION_SECRET is
missing, blank, too short, or a known weak default.
"""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from skincase.api.deps import _load_secret


@pytest.mark.parametrize("name", ["JWT_SECRET", "SESSION_SECRET"])
class TestSecretValidation:
    def test_rejects_missing_secret(self, name):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop(name, None)
            with pytest.raises(RuntimeError, match=f"{name} environment variable is not set"):
                _load_secret(name)

    def test_rejects_empty_secret(self, name):
        with patch.dict(os.environ, {name: ""}):
            with pytest.raises(RuntimeError, match="environment variable is not set"):
                _load_secret(name)

    @pytest.mark.parametrize("weak", ["skincase-dev-secret-change-me", "change-me", "secret"])
    def test_rejects_known_weak_default(self, name, weak):
        with patch.dict(os.environ, {name: weak}):
            with pytest.raises(RuntimeError, match="known weak default"):
                _load_secret(name)

    def test_rejects_short_secret(self, name):
        with patch.dict(os.environ, {name: "tooshort"}):
            with pytest.raises(RuntimeError, match="too short"):
                _load_secret(name)

    def test_accepts_strong_secret(self, name):
        good_secret = "a" * 64
        with patch.dict(os.environ, {name: good_secret}):
            assert _load_secret(name) == good_secret

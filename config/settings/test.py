"""
Test settings – used by pytest-django (see pyproject.toml).

Tests point VALUES_ROOT at a temporary tree through the ``settings`` fixture,
so the checked-in documents are never rewritten by the suite.
"""
import os

os.environ.setdefault("SECRET_KEY", "test-only-secret-key")

from .base import *  # noqa: E402, F401, F403

DEBUG = False

ALLOWED_HOSTS = ["testserver", "localhost"]

VALUES_WRITE_ENABLED = False

LOGGING["root"]["level"] = "WARNING"  # noqa: F405

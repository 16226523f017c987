"""
apps.values_store.services.image_tag
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Rules for the ``global.imageTag`` key.

The CI pipeline tags images with the first seven characters of the commit
SHA.  Both the linter and the writer use the helpers here so the accepted
format is defined in one place.
"""
from __future__ import annotations

import re

from common.exceptions import AppError

IMAGE_TAG_KEY = "global.imageTag"
IMAGE_TAG_LENGTH = 7

#: Exact format stored in a value document.
IMAGE_TAG_RE = re.compile(r"^[0-9a-f]{7}$")

#: Input accepted by :func:`normalize_image_tag` (short or full SHA-1).
_SHA_INPUT_RE = re.compile(r"^[0-9a-fA-F]{7,40}$")


class InvalidImageTagError(AppError):
    default_code = "invalid_image_tag"
    default_detail = "Image tag must be a 7 to 40 character hexadecimal git SHA."


def is_valid_image_tag(value: object) -> bool:
    """Return ``True`` iff *value* is a string in the stored tag format."""
    return isinstance(value, str) and bool(IMAGE_TAG_RE.match(value))


def normalize_image_tag(sha: str) -> str:
    """
    Turn a git SHA into the stored tag format.

    Accepts 7-40 hexadecimal characters in any case, with surrounding
    whitespace, and returns the lowercase 7-character prefix.

    Raises:
        InvalidImageTagError: If *sha* is not a string of hex digits of an
            acceptable length.
    """
    if not isinstance(sha, str):
        raise InvalidImageTagError(
            f"Image tag must be a string; got {type(sha).__name__}."
        )
    candidate = sha.strip()
    if not _SHA_INPUT_RE.match(candidate):
        raise InvalidImageTagError(
            f"{sha!r} is not a git SHA: expected 7 to 40 hexadecimal characters."
        )
    return candidate[:IMAGE_TAG_LENGTH].lower()


def describe_invalid_image_tag(value: object) -> str:
    """Human-readable reason why a stored *value* is not a valid tag."""
    if isinstance(value, bool):
        return f"{IMAGE_TAG_KEY} must be a string; got bool."
    if isinstance(value, (int, float)):
        return (
            f"{IMAGE_TAG_KEY} must be a string; YAML read {value!r} as "
            f"{type(value).__name__}. Quote the tag in the document."
        )
    if not isinstance(value, str):
        return f"{IMAGE_TAG_KEY} must be a string; got {type(value).__name__}."
    return (
        f"{IMAGE_TAG_KEY} value {value!r} must be exactly "
        f"{IMAGE_TAG_LENGTH} lowercase hexadecimal characters."
    )

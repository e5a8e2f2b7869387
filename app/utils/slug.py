# app/utils/slug.py
import re
import secrets
import string

_SLUG_ALPHABET = string.ascii_lowercase + string.digits
SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def _random_suffix(length: int = 8) -> str:
    return "".join(secrets.choice(_SLUG_ALPHABET) for _ in range(length))


def generate_slug(text: str, max_base_length: int = 90) -> str:
    """
    Build a URL slug from a title with a random 8-character suffix, so two
    titles that normalize to the same text still get distinct slugs.
    """
    suffix = _random_suffix()
    if not text or not text.strip():
        return suffix

    base = text.lower()
    base = re.sub(r"\s+", "-", base)
    base = re.sub(r"[^a-z0-9-]", "", base)
    base = re.sub(r"-{2,}", "-", base)
    base = base.strip("-")[:max_base_length].rstrip("-")

    if not base:
        return suffix
    return f"{base}-{suffix}"

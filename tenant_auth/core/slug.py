import re

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9\-]+")
_REPEATED_HYPHENS = re.compile(r"-{2,}")

MAX_SLUG_LENGTH = 63  # DNS label limit, slugs double as subdomains
MIN_SLUG_LENGTH = 3


def generate_slug(value: str) -> str:
    """
    Convert a company name into a URL-safe slug.

    Example: "My Company Name!" -> "my-company-name"
    """
    slug = value.lower().replace(" ", "-").replace("_", "-")
    slug = _NON_SLUG_CHARS.sub("", slug)
    slug = _REPEATED_HYPHENS.sub("-", slug).strip("-")

    if slug and not slug[0].isalpha():
        slug = f"a-{slug}"

    if len(slug) > MAX_SLUG_LENGTH:
        slug = slug[:MAX_SLUG_LENGTH].rstrip("-")

    if len(slug) < MIN_SLUG_LENGTH:
        slug = f"{slug}-org" if slug else "org"

    return slug


def is_valid_slug(slug: str) -> bool:
    """Slugs start with a letter, use lowercase letters, digits and hyphens"""
    if not MIN_SLUG_LENGTH <= len(slug) <= MAX_SLUG_LENGTH:
        return False
    return bool(re.fullmatch(r"[a-z][a-z0-9\-]*[a-z0-9]", slug))

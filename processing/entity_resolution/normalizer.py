"""
Name normalization for exact-key comparison.

People:        lowercase, letters and spaces only.
Organizations: lowercase, letters/digits and spaces, trailing legal-entity
               suffixes removed ("Ferguson Supply, Inc." -> "ferguson supply").
"""

import re

from processing.models import EntityKind

LEGAL_SUFFIXES = (
    "incorporated",
    "inc",
    "llc",
    "corporation",
    "corp",
    "company",
    "co",
    "limited",
    "ltd",
)

_PERSON_DISALLOWED = re.compile(r"[^a-z\s]")
_ORGANIZATION_DISALLOWED = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")

# Punctuation is already gone when this runs, so "L.L.C." arrives as "llc"
# and "Inc." as "inc". The leading space keeps a bare "Inc" intact.
_TRAILING_SUFFIX = re.compile(
    r"\s+(?:" + "|".join(LEGAL_SUFFIXES) + r")$"
)


def _collapse(value: str) -> str:
    return _WHITESPACE.sub(" ", value).strip()


def strip_legal_suffixes(name: str) -> str:
    """Remove trailing legal-entity tokens until none remain ("acme co inc" -> "acme")."""
    while True:
        stripped = _TRAILING_SUFFIX.sub("", name)
        if stripped == name:
            return name
        name = stripped


def normalize_name(raw: str, kind: EntityKind) -> str:
    """
    Map a raw name to its canonical comparison key.

    Total and idempotent: normalize_name(normalize_name(x, k), k) equals
    normalize_name(x, k). Blank input gives "".
    """
    if not raw:
        return ""

    normalized = raw.lower().strip()

    if kind == EntityKind.ORGANIZATION:
        normalized = _collapse(_ORGANIZATION_DISALLOWED.sub("", normalized))
        return strip_legal_suffixes(normalized)

    return _collapse(_PERSON_DISALLOWED.sub("", normalized))

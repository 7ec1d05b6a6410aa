from __future__ import annotations

import re
from typing import Iterable, Sequence

_SEPARATORS_RE = re.compile(r"[_-]")
_SPACES_RE = re.compile(r"\s+")


def normalize_keyword(value: str) -> str:
    term = (value or "").lower().strip()
    term = _SEPARATORS_RE.sub(" ", term)
    return _SPACES_RE.sub(" ", term).strip()


def normalize_keywords(values: Iterable[str]) -> list[str]:
    """Normalize, drop empties and de-duplicate, keeping first-seen order."""
    out: list[str] = []
    seen: set[str] = set()
    for item in values:
        term = normalize_keyword(item)
        if not term or term in seen:
            continue
        seen.add(term)
        out.append(term)
    return out


def match_keywords(title: str, keywords: Sequence[str]) -> tuple[str, ...]:
    """
    Return the keywords found in the title, in keyword order.

    Matching is a case-insensitive substring test; keywords are expected to be
    normalized already.
    """
    haystack = (title or "").lower()
    if not haystack:
        return ()
    return tuple(kw for kw in keywords if kw and kw in haystack)


def clean_community_name(value: str) -> str:
    name = (value or "").strip()
    if name[:2].casefold() == "r/":
        name = name[2:]
    elif name[:3].casefold() == "/r/":
        name = name[3:]
    return name.strip().strip("/").strip()


def normalize_community(value: str) -> str:
    return clean_community_name(value).casefold()


def normalize_communities(values: Iterable[str]) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for item in values:
        name = normalize_community(item)
        if not name or name in seen:
            continue
        seen.add(name)
        out.append(name)
    return out

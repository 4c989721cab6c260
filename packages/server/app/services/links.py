"""
Submission link payload codec.

The task projection and every ledger entry store the same shape: an ordered
JSON list of ``{"title", "url"}`` objects. Rows written by older clients may
instead hold a JSON-encoded string of that list, or a bare URL.
"""

from __future__ import annotations

import json
from typing import Any, Iterable

from pydantic import ValidationError

from studygroup_shared.schemas.tasks import SubmissionLink

LEGACY_LINK_TITLE = "Bài nộp"


def _from_item(item: Any) -> SubmissionLink | None:
    if isinstance(item, str):
        return SubmissionLink(title=LEGACY_LINK_TITLE, url=item) if item.strip() else None
    if isinstance(item, dict):
        try:
            return SubmissionLink.model_validate(item)
        except ValidationError:
            return None
    return None


def decode_links(raw: Any) -> list[SubmissionLink]:
    """Decode a stored payload into links, tolerating legacy encodings."""
    if raw is None:
        return []
    if isinstance(raw, str):
        if not raw.strip():
            return []
        try:
            parsed = json.loads(raw)
        except ValueError:
            return [SubmissionLink(title=LEGACY_LINK_TITLE, url=raw.strip())]
        if isinstance(parsed, list):
            raw = parsed
        else:
            return [SubmissionLink(title=LEGACY_LINK_TITLE, url=raw.strip())]
    if isinstance(raw, dict):
        raw = [raw]
    if not isinstance(raw, (list, tuple)):
        return []
    links = []
    for item in raw:
        link = _from_item(item)
        if link is not None:
            links.append(link)
    return links


def encode_links(links: Iterable[SubmissionLink]) -> list[dict[str, str]]:
    return [{"title": link.title, "url": link.url} for link in links]


def non_blank_links(links: Iterable[SubmissionLink]) -> list[SubmissionLink]:
    """Keep links with a non-blank URL, in order."""
    return [link for link in links if link.url.strip()]

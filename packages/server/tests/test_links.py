"""
Tests for the submission link codec, including legacy stored payloads.
"""

from __future__ import annotations

import json

from app.services.links import LEGACY_LINK_TITLE, decode_links, encode_links, non_blank_links
from studygroup_shared.schemas.tasks import SubmissionLink


class TestDecodeLinks:
    def test_list_of_objects(self):
        links = decode_links(
            [
                {"title": "Báo cáo", "url": "https://drive.example/a"},
                {"title": "Slide", "url": "https://drive.example/b"},
            ]
        )
        assert [l.title for l in links] == ["Báo cáo", "Slide"]
        assert links[1].url == "https://drive.example/b"

    def test_json_encoded_string(self):
        raw = json.dumps([{"title": "Repo", "url": "https://git.example/r"}])
        assert decode_links(raw) == [SubmissionLink(title="Repo", url="https://git.example/r")]

    def test_bare_url_string_is_one_legacy_link(self):
        links = decode_links("https://drive.example/old")
        assert links == [SubmissionLink(title=LEGACY_LINK_TITLE, url="https://drive.example/old")]

    def test_empty_values(self):
        assert decode_links(None) == []
        assert decode_links("") == []
        assert decode_links("   ") == []
        assert decode_links([]) == []

    def test_single_object(self):
        assert decode_links({"title": "X", "url": "https://x"}) == [
            SubmissionLink(title="X", url="https://x")
        ]

    def test_unreadable_items_are_skipped(self):
        links = decode_links([42, {"title": "ok", "url": "https://ok"}, None])
        assert links == [SubmissionLink(title="ok", url="https://ok")]

    def test_missing_title_defaults_to_empty(self):
        assert decode_links([{"url": "https://x"}])[0].title == ""


class TestPayload:
    def test_blank_urls_dropped_titles_trimmed(self):
        links = [
            SubmissionLink(title="  Báo cáo  ", url=" https://a "),
            SubmissionLink(title="Trống", url="   "),
            SubmissionLink(title="", url=""),
        ]
        kept = non_blank_links(links)
        assert encode_links(kept) == [{"title": "Báo cáo", "url": "https://a"}]

    def test_order_is_preserved(self):
        links = [SubmissionLink(title=str(i), url=f"https://x/{i}") for i in range(5)]
        assert [d["title"] for d in encode_links(non_blank_links(links))] == list("01234")

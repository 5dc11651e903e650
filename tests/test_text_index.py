"""Tests for the FTS5 text index."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from obsidx.errors import InvalidQueryError, StoreUnavailableError
from obsidx.indexer.text_index import TEXT_INDEX_FILENAME, TextIndex, build_match_expression

from .helpers import make_note

if TYPE_CHECKING:
    from pathlib import Path


class TestMatchExpression:
    def test_words_become_or_terms_with_column_filter(self) -> None:
        expr = build_match_expression("rust async", ["title", "content"])
        assert expr == '{title content} : ("rust" OR "async")'

    def test_quoted_phrase_kept_together(self) -> None:
        expr = build_match_expression('"event loop" tokio', ["content"])
        assert expr == '{content} : ("event loop" OR "tokio")'

    def test_fts_operators_are_quoted(self) -> None:
        expr = build_match_expression("NOT AND*", ["content"])
        assert expr == '{content} : ("NOT" OR "AND*")'

    @pytest.mark.parametrize("query", ["", "   ", '""'])
    def test_empty_query_rejected(self, query: str) -> None:
        with pytest.raises(InvalidQueryError):
            build_match_expression(query, ["content"])

    def test_unbalanced_quote_rejected(self) -> None:
        with pytest.raises(InvalidQueryError, match="unbalanced"):
            build_match_expression('"open phrase', ["content"])

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(InvalidQueryError, match="unknown field"):
            build_match_expression("x", ["body"])

    def test_no_fields_rejected(self) -> None:
        with pytest.raises(InvalidQueryError):
            build_match_expression("x", [])


class TestOpen:
    def test_creates_directory_and_file(self, tmp_path: Path) -> None:
        location = tmp_path / "nested" / "index"
        with TextIndex.open(location) as index:
            assert index.count() == 0
        assert (location / TEXT_INDEX_FILENAME).is_file()

    def test_garbage_file_is_unavailable(self, tmp_path: Path) -> None:
        tmp_path.joinpath(TEXT_INDEX_FILENAME).write_bytes(b"definitely not sqlite " * 64)
        with pytest.raises(StoreUnavailableError):
            TextIndex.open(tmp_path)

    def test_location_is_a_file(self, tmp_path: Path) -> None:
        blocker = tmp_path / "index"
        blocker.write_text("file in the way")
        with pytest.raises(StoreUnavailableError):
            TextIndex.open(blocker)

    def test_reopen_keeps_contents(self, tmp_path: Path) -> None:
        with TextIndex.open(tmp_path) as index:
            index.upsert_batch([make_note("a.md", "persisted words")])
        with TextIndex.open(tmp_path) as index:
            assert index.count() == 1
            assert [h.path for h in index.query_ranked("persisted")] == ["a.md"]


class TestUpsert:
    def test_mtime_gate(self, text_index: TextIndex) -> None:
        first = text_index.upsert_batch([make_note("a.md", "original", mtime=100)])
        assert (first.inserted, first.updated, first.skipped) == (1, 0, 0)

        older = text_index.upsert_batch([make_note("a.md", "older", mtime=50)])
        assert older.skipped == 1
        assert text_index.exact_lookup("path", "a.md").body == "original"

        same = text_index.upsert_batch([make_note("a.md", "same", mtime=100)])
        assert same.changed == 0

        newer = text_index.upsert_batch([make_note("a.md", "newer", mtime=101)])
        assert newer.updated == 1
        note = text_index.exact_lookup("path", "a.md")
        assert note.body == "newer"
        assert note.mtime == 101
        assert text_index.count() == 1

    def test_replacement_drops_old_terms(self, text_index: TextIndex) -> None:
        text_index.upsert_batch([make_note("a.md", "zebra", mtime=1, links=["old"], tags=["t1"])])
        text_index.upsert_batch([make_note("a.md", "giraffe", mtime=2, links=["new"], tags=["t2"])])

        assert text_index.query_ranked("zebra") == []
        assert [h.path for h in text_index.query_ranked("giraffe")] == ["a.md"]
        assert text_index.term_lookup("links", "old") == []
        assert [n.path for n in text_index.term_lookup("links", "new")] == ["a.md"]
        assert text_index.tag_counts() == [("t2", 1)]

    def test_full_mode_clears_first(self, text_index: TextIndex) -> None:
        text_index.upsert_batch([make_note("gone.md", "x"), make_note("kept.md", "y")])
        stats = text_index.upsert_batch([make_note("kept.md", "y")], incremental=False)

        assert stats.inserted == 1
        assert text_index.count() == 1
        assert text_index.exact_lookup("path", "gone.md") is None

    def test_duplicate_path_in_one_batch(self, text_index: TextIndex) -> None:
        stats = text_index.upsert_batch(
            [make_note("a.md", "first", mtime=1), make_note("a.md", "second", mtime=2)]
        )
        assert (stats.inserted, stats.updated) == (1, 1)
        assert text_index.exact_lookup("path", "a.md").body == "second"

    def test_frontmatter_dates_round_trip_as_text(self, text_index: TextIndex) -> None:
        from datetime import date

        note = make_note("a.md", "x").model_copy(update={"frontmatter": {"created": date(2024, 5, 1)}})
        text_index.upsert_batch([note])
        assert text_index.exact_lookup("path", "a.md").frontmatter == {"created": "2024-05-01"}


class TestQueryRanked:
    def test_title_outweighs_content(self, text_index: TextIndex) -> None:
        text_index.upsert_batch(
            [
                make_note("body.md", "kubernetes appears once here", title="Notes"),
                make_note("title.md", "unrelated text", title="Kubernetes"),
            ]
        )
        hits = text_index.query_ranked("kubernetes")
        assert [h.path for h in hits] == ["title.md", "body.md"]
        assert hits[0].score > hits[1].score

    def test_field_restriction(self, text_index: TextIndex) -> None:
        text_index.upsert_batch([make_note("a.md", "banana", title="Fruit")])
        assert text_index.query_ranked("banana", fields=["title"]) == []
        assert [h.path for h in text_index.query_ranked("banana", fields=["content"])] == ["a.md"]

    def test_tags_are_searchable(self, text_index: TextIndex) -> None:
        text_index.upsert_batch([make_note("a.md", "nothing", tags=["research"])])
        assert [h.path for h in text_index.query_ranked("research", fields=["tags"])] == ["a.md"]

    def test_collection_filter_applies_before_limit(self, text_index: TextIndex) -> None:
        heavy = "deploy " * 20
        notes = [make_note(f"work{i}.md", heavy, collection="work") for i in range(5)]
        notes.append(make_note("home.md", "deploy once", collection="home"))
        text_index.upsert_batch(notes)

        hits = text_index.query_ranked("deploy", limit=1, collection="home")
        assert [h.path for h in hits] == ["home.md"]
        assert len(text_index.query_ranked("deploy", limit=10)) == 6

    def test_no_match_is_empty(self, text_index: TextIndex) -> None:
        text_index.upsert_batch([make_note("a.md", "alpha")])
        assert text_index.query_ranked("omega") == []

    def test_limit(self, text_index: TextIndex) -> None:
        text_index.upsert_batch([make_note(f"n{i}.md", "common") for i in range(5)])
        assert len(text_index.query_ranked("common", limit=3)) == 3


class TestLookups:
    def test_exact_lookup_is_not_substring(self, text_index: TextIndex) -> None:
        text_index.upsert_batch([make_note("a.md"), make_note("aa.md")])
        assert text_index.exact_lookup("path", "a") is None
        assert text_index.exact_lookup("path", "a.md").path == "a.md"

    def test_exact_lookup_by_doc_id(self, text_index: TextIndex) -> None:
        note = make_note("a.md", "x")
        text_index.upsert_batch([note])
        assert text_index.exact_lookup("doc_id", note.doc_id).path == "a.md"

    def test_exact_lookup_rejects_other_fields(self, text_index: TextIndex) -> None:
        with pytest.raises(ValueError, match="exact lookup"):
            text_index.exact_lookup("title", "x")

    def test_term_lookup_matches_whole_terms(self, text_index: TextIndex) -> None:
        text_index.upsert_batch(
            [
                make_note("one.md", links=["b"]),
                make_note("two.md", links=["bb", "b"]),
                make_note("three.md", links=["bb"]),
            ]
        )
        assert [n.path for n in text_index.term_lookup("links", "b")] == ["one.md", "two.md"]
        assert [n.path for n in text_index.term_lookup("links", "bb")] == ["three.md", "two.md"]

    def test_term_lookup_rejects_other_fields(self, text_index: TextIndex) -> None:
        with pytest.raises(ValueError, match="term lookup"):
            text_index.term_lookup("title", "x")

    def test_tag_counts_and_collections(self, text_index: TextIndex) -> None:
        text_index.upsert_batch(
            [
                make_note("a.md", tags=["ai", "python"], collection="work"),
                make_note("b.md", tags=["python"], collection="work"),
                make_note("c.md", tags=["garden"], collection="home"),
            ]
        )
        assert text_index.tag_counts() == [("python", 2), ("ai", 1), ("garden", 1)]
        assert text_index.tag_counts("home") == [("garden", 1)]
        assert text_index.collections() == ["home", "work"]
        assert text_index.count("work") == 2


class TestMalformedRecords:
    def test_corrupt_json_field_degrades_to_default(self, text_index: TextIndex) -> None:
        text_index.upsert_batch([make_note("a.md", "body", tags=["keep"], links=["x"])])
        with text_index._conn:
            text_index._conn.execute("UPDATE notes SET links_json = '{broken' WHERE path = 'a.md'")
            text_index._conn.execute("UPDATE notes SET frontmatter_json = '[1, 2]' WHERE path = 'a.md'")

        note = text_index.exact_lookup("path", "a.md")
        assert note.links == []
        assert note.frontmatter == {}
        assert note.tags == ["keep"]
        assert note.body == "body"

    def test_non_string_list_items_dropped(self, text_index: TextIndex) -> None:
        text_index.upsert_batch([make_note("a.md")])
        with text_index._conn:
            text_index._conn.execute("""UPDATE notes SET tags_json = '["ok", 3, null]'""")
        assert text_index.exact_lookup("path", "a.md").tags == ["ok"]


class TestTermLookupScope:
    def test_collection_filter_applies_before_limit(self, text_index: TextIndex) -> None:
        notes = [make_note(f"a{i:02}.md", links=["hub"], collection="work") for i in range(5)]
        notes.append(make_note("z.md", links=["hub"], collection="home"))
        text_index.upsert_batch(notes)

        found = text_index.term_lookup("links", "hub", collection="home", limit=1)
        assert [n.path for n in found] == ["z.md"]

    def test_no_cap_by_default(self, text_index: TextIndex) -> None:
        text_index.upsert_batch([make_note(f"n{i:04}.md", tags=["bulk"]) for i in range(1100)])
        assert len(text_index.term_lookup("tags", "bulk")) == 1100
        assert len(text_index.term_lookup("tags", "bulk", limit=10)) == 10

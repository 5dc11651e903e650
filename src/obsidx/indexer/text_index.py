"""Lexical index — SQLite FTS5 over note title, content, and tags.

One row per note in ``notes`` (the stored record), a matching row in the
``notes_fts`` virtual table sharing its rowid (the ranked text fields), and
one row per outbound link / tag in ``note_links`` / ``note_tags`` for exact
term lookups such as backlinks.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from obsidx.errors import InvalidQueryError, MalformedRecordError, StoreUnavailableError
from obsidx.vault.models import Note

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

logger = logging.getLogger(__name__)

TEXT_INDEX_FILENAME = "text.sqlite"

SEARCHABLE_FIELDS = ("title", "content", "tags")
EXACT_FIELDS = ("path", "doc_id")
TERM_FIELDS = ("links", "tags")

# bm25() column weights in notes_fts column order:
# doc_id, path, collection (unindexed), title, content, tags
_BM25_WEIGHTS = "0.0, 0.0, 0.0, 3.0, 1.0, 2.0"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS notes (
  doc_id TEXT NOT NULL,
  path TEXT NOT NULL UNIQUE,
  collection TEXT NOT NULL,
  title TEXT NOT NULL,
  content TEXT NOT NULL,
  tags_json TEXT NOT NULL,
  headings_json TEXT NOT NULL,
  links_json TEXT NOT NULL,
  frontmatter_json TEXT NOT NULL,
  mtime REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_notes_doc_id ON notes(doc_id);
CREATE INDEX IF NOT EXISTS idx_notes_collection ON notes(collection);

CREATE TABLE IF NOT EXISTS note_links (
  note_rowid INTEGER NOT NULL,
  link TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_note_links_link ON note_links(link);
CREATE INDEX IF NOT EXISTS idx_note_links_note ON note_links(note_rowid);

CREATE TABLE IF NOT EXISTS note_tags (
  note_rowid INTEGER NOT NULL,
  tag TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_note_tags_tag ON note_tags(tag);
CREATE INDEX IF NOT EXISTS idx_note_tags_note ON note_tags(note_rowid);

CREATE VIRTUAL TABLE IF NOT EXISTS notes_fts USING fts5(
  doc_id UNINDEXED,
  path UNINDEXED,
  collection UNINDEXED,
  title,
  content,
  tags,
  tokenize='unicode61'
);
"""

_QUERY_TOKEN = re.compile(r'"([^"]*)"|(\S+)')


@dataclass(frozen=True, slots=True)
class TextHit:
    """One ranked lexical result. Higher score is better."""

    doc_id: str
    path: str
    score: float


@dataclass(slots=True)
class UpsertStats:
    inserted: int = 0
    updated: int = 0
    skipped: int = 0

    @property
    def changed(self) -> int:
        return self.inserted + self.updated


def _json_default(obj: Any) -> str:
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return str(obj)


def _dumps(obj: Any) -> str:
    return json.dumps(obj, default=_json_default, ensure_ascii=False)


def _loads(raw: str, field: str) -> Any:
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        raise MalformedRecordError(field, str(raw)) from None


def build_match_expression(text: str, fields: Sequence[str] = SEARCHABLE_FIELDS) -> str:
    """Translate free text into an FTS5 MATCH expression.

    Bare words and ``"quoted phrases"`` become quoted FTS5 strings joined
    with OR; *fields* becomes a column filter.
    """
    unknown = [f for f in fields if f not in SEARCHABLE_FIELDS]
    if unknown:
        raise InvalidQueryError(text, f"unknown field(s): {', '.join(unknown)}")
    if not fields:
        raise InvalidQueryError(text, "no fields to search")
    if text.count('"') % 2:
        raise InvalidQueryError(text, "unbalanced quote")

    terms: list[str] = []
    for match in _QUERY_TOKEN.finditer(text):
        phrase, word = match.groups()
        term = (phrase if phrase is not None else word).strip()
        if term:
            terms.append('"' + term.replace('"', '""') + '"')
    if not terms:
        raise InvalidQueryError(text, "empty query")

    columns = " ".join(fields)
    return f"{{{columns}}} : ({' OR '.join(terms)})"


class TextIndex:
    """Persistent lexical index with an mtime-gated incremental upsert."""

    def __init__(self, conn: sqlite3.Connection, location: Path) -> None:
        self._conn = conn
        self.location = location

    @classmethod
    def open(cls, location: Path) -> TextIndex:
        """Open the index under *location*, creating it if needed."""
        db_path = location / TEXT_INDEX_FILENAME
        try:
            location.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(db_path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA_SQL)
            conn.commit()
        except OSError as exc:
            raise StoreUnavailableError(db_path, str(exc)) from exc
        except sqlite3.DatabaseError as exc:
            raise StoreUnavailableError(db_path, f"malformed or unusable index: {exc}") from exc

        index = cls(conn, location)
        logger.info("Text index opened at %s (%d notes)", db_path, index.count())
        return index

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> TextIndex:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def mtime_snapshot(self) -> dict[str, float]:
        """Current path → mtime of every stored note."""
        rows = self._conn.execute("SELECT path, mtime FROM notes").fetchall()
        return {row["path"]: row["mtime"] for row in rows}

    def clear(self) -> None:
        with self._conn:
            self._delete_all()

    def _delete_all(self) -> None:
        for table in ("notes", "notes_fts", "note_links", "note_tags"):
            self._conn.execute(f"DELETE FROM {table}")  # noqa: S608

    def upsert_batch(self, notes: Iterable[Note], incremental: bool = True) -> UpsertStats:
        """Write *notes* into the index.

        Incremental mode skips any note whose stored mtime is at least the
        candidate's, and replaces the rest. Full mode clears the index first.
        """
        stats = UpsertStats()
        with self._conn:
            if not incremental:
                self._delete_all()
            snapshot = self.mtime_snapshot()

            for note in notes:
                stored = snapshot.get(note.path)
                if stored is not None and stored >= note.mtime:
                    stats.skipped += 1
                    continue
                if stored is not None:
                    self._delete_path(note.path)
                    stats.updated += 1
                else:
                    stats.inserted += 1
                self._insert(note)
                snapshot[note.path] = note.mtime

        logger.info(
            "Text index: %d inserted, %d updated, %d skipped",
            stats.inserted,
            stats.updated,
            stats.skipped,
        )
        return stats

    def _delete_path(self, path: str) -> None:
        row = self._conn.execute("SELECT rowid FROM notes WHERE path = ?", (path,)).fetchone()
        if row is None:
            return
        rowid = row["rowid"]
        self._conn.execute("DELETE FROM notes_fts WHERE rowid = ?", (rowid,))
        self._conn.execute("DELETE FROM note_links WHERE note_rowid = ?", (rowid,))
        self._conn.execute("DELETE FROM note_tags WHERE note_rowid = ?", (rowid,))
        self._conn.execute("DELETE FROM notes WHERE rowid = ?", (rowid,))

    def _insert(self, note: Note) -> None:
        cursor = self._conn.execute(
            "INSERT INTO notes (doc_id, path, collection, title, content, tags_json, "
            "headings_json, links_json, frontmatter_json, mtime) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                note.doc_id,
                note.path,
                note.collection,
                note.title,
                note.body,
                _dumps(note.tags),
                _dumps(note.headings),
                _dumps(note.links),
                _dumps(note.frontmatter),
                note.mtime,
            ),
        )
        rowid = cursor.lastrowid
        self._conn.execute(
            "INSERT INTO notes_fts (rowid, doc_id, path, collection, title, content, tags) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                rowid,
                note.doc_id,
                note.path,
                note.collection,
                note.title,
                note.body,
                " ".join(note.tags),
            ),
        )
        self._conn.executemany(
            "INSERT INTO note_links (note_rowid, link) VALUES (?, ?)",
            [(rowid, link) for link in note.links],
        )
        self._conn.executemany(
            "INSERT INTO note_tags (note_rowid, tag) VALUES (?, ?)",
            [(rowid, tag) for tag in note.tags],
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query_ranked(
        self,
        text: str,
        fields: Sequence[str] = SEARCHABLE_FIELDS,
        limit: int = 20,
        collection: str | None = None,
    ) -> list[TextHit]:
        """BM25-ranked search; the collection filter is part of the same query."""
        expression = build_match_expression(text, fields)
        sql = (
            f"SELECT doc_id, path, bm25(notes_fts, {_BM25_WEIGHTS}) AS bm25_score "
            "FROM notes_fts WHERE notes_fts MATCH ?"
        )
        params: list[Any] = [expression]
        if collection is not None:
            sql += " AND collection = ?"
            params.append(collection)
        sql += " ORDER BY bm25_score, rowid LIMIT ?"
        params.append(limit)

        try:
            rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.OperationalError as exc:
            raise InvalidQueryError(text, str(exc)) from exc

        return [TextHit(doc_id=r["doc_id"], path=r["path"], score=-r["bm25_score"]) for r in rows]

    def exact_lookup(self, field: str, value: str) -> Note | None:
        """At most one note whose *field* equals *value* exactly."""
        if field not in EXACT_FIELDS:
            raise ValueError(f"exact lookup supports {EXACT_FIELDS}, got {field!r}")
        row = self._conn.execute(
            f"SELECT * FROM notes WHERE {field} = ? ORDER BY rowid LIMIT 1",  # noqa: S608
            (value,),
        ).fetchone()
        return self._row_to_note(row) if row is not None else None

    def term_lookup(
        self,
        field: str,
        value: str,
        collection: str | None = None,
        limit: int | None = None,
    ) -> list[Note]:
        """Every note carrying the exact term *value* in multi-valued *field*, by path.

        The collection filter is part of the query, so *limit* counts only
        matching notes. ``None`` means no limit.
        """
        if field == "links":
            table, column = "note_links", "link"
        elif field == "tags":
            table, column = "note_tags", "tag"
        else:
            raise ValueError(f"term lookup supports {TERM_FIELDS}, got {field!r}")

        sql = (
            f"SELECT DISTINCT n.* FROM notes n JOIN {table} t ON t.note_rowid = n.rowid "  # noqa: S608
            f"WHERE t.{column} = ?"
        )
        params: list[Any] = [value]
        if collection is not None:
            sql += " AND n.collection = ?"
            params.append(collection)
        sql += " ORDER BY n.path"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        rows = self._conn.execute(sql, params).fetchall()
        return [self._row_to_note(row) for row in rows]

    def tag_counts(self, collection: str | None = None) -> list[tuple[str, int]]:
        """(tag, number of notes) pairs, most used first."""
        sql = "SELECT t.tag AS tag, COUNT(*) AS note_count FROM note_tags t"
        params: list[Any] = []
        if collection is not None:
            sql += " JOIN notes n ON n.rowid = t.note_rowid WHERE n.collection = ?"
            params.append(collection)
        sql += " GROUP BY t.tag ORDER BY note_count DESC, t.tag"
        return [(r["tag"], r["note_count"]) for r in self._conn.execute(sql, params).fetchall()]

    def count(self, collection: str | None = None) -> int:
        if collection is None:
            row = self._conn.execute("SELECT COUNT(*) FROM notes").fetchone()
        else:
            row = self._conn.execute(
                "SELECT COUNT(*) FROM notes WHERE collection = ?", (collection,)
            ).fetchone()
        return int(row[0])

    def collections(self) -> list[str]:
        rows = self._conn.execute("SELECT DISTINCT collection FROM notes ORDER BY collection")
        return [r["collection"] for r in rows.fetchall()]

    def _row_to_note(self, row: sqlite3.Row) -> Note:
        return Note(
            doc_id=row["doc_id"],
            path=row["path"],
            collection=row["collection"],
            title=row["title"],
            tags=self._load_field(row, "tags_json", list),
            headings=self._load_field(row, "headings_json", list),
            links=self._load_field(row, "links_json", list),
            frontmatter=self._load_field(row, "frontmatter_json", dict),
            body=row["content"],
            mtime=row["mtime"],
        )

    @staticmethod
    def _load_field(row: sqlite3.Row, column: str, kind: type) -> Any:
        """Deserialize a JSON column, degrading to an empty *kind* on corruption."""
        try:
            value = _loads(row[column], column)
            if not isinstance(value, kind):
                raise MalformedRecordError(column, row[column])
            if kind is list:
                value = [v for v in value if isinstance(v, str)]
        except MalformedRecordError as exc:
            logger.warning("%s (note %s) — using default", exc, row["path"])
            return kind()
        return value

"""
LanceDB-backed chunk store.

One table holds every chunk with a fixed-size vector column. Chunks written
in lite mode carry a zero vector and has_vector = false and are filtered out
of vector search. Replacing a note's chunk set is a single merge_insert
commit, so readers never observe a half-written note.
"""

import logging
from pathlib import Path
from typing import Any, Iterable, Optional

import lancedb
import pyarrow as pa
from lancedb.table import Table

from .base import ChunkStore, score_keyword_match
from ..exceptions import DimensionMismatchError, StoreError
from ..models import EmbeddingMeta, NoteRecord

logger = logging.getLogger(__name__)

DEFAULT_DIMENSION = 384


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def chunk_schema(dimension: int) -> pa.Schema:
    """Arrow schema of the chunk table for a given vector length."""
    return pa.schema([
        pa.field("path", pa.string()),
        pa.field("chunk_ordinal", pa.int32()),
        pa.field("title", pa.string()),
        pa.field("tags", pa.list_(pa.string())),
        pa.field("domain", pa.string()),
        pa.field("workstream", pa.string()),
        pa.field("heading", pa.string()),
        pa.field("text", pa.string()),
        pa.field("modified", pa.float64()),
        pa.field("content_hash", pa.string()),
        pa.field("content_type", pa.string()),
        pa.field("confidence", pa.float64()),
        pa.field("access_count", pa.int64()),
        pa.field("has_vector", pa.bool_()),
        pa.field("vector", pa.list_(pa.float32(), dimension)),
    ])


def _row_to_record(row: dict[str, Any]) -> NoteRecord:
    """Convert a table row (from arrow or pandas) to a NoteRecord."""
    vector = None
    if bool(row["has_vector"]):
        vector = [float(v) for v in row["vector"]]
    tags = row.get("tags")
    return NoteRecord(
        path=row["path"],
        chunk_ordinal=int(row["chunk_ordinal"]),
        title=row["title"],
        tags=[str(t) for t in tags] if tags is not None else [],
        domain=row.get("domain"),
        workstream=row.get("workstream"),
        heading=row["heading"],
        text=row["text"],
        modified=float(row["modified"]),
        content_hash=row["content_hash"],
        content_type=row["content_type"],
        confidence=float(row["confidence"]),
        access_count=int(row["access_count"]),
        vector=vector,
    )


class LanceStore(ChunkStore):
    """
    ChunkStore over a local LanceDB database.

    Features:
    - Lazy connection and table creation
    - Vector length taken from the first vectors written (or default_dimension)
    - Atomic per-note replacement via merge_insert
    - Embedding metadata in a JSON file next to the database
    """

    def __init__(self, db_path: Path, table_name: str = "note_chunks", default_dimension: int = DEFAULT_DIMENSION):
        """
        Initialize the store.

        Args:
            db_path: Path to the LanceDB database directory
            table_name: Name of the chunk table
            default_dimension: Vector length used when a table is first created by a lite write
        """
        self.db_path = Path(db_path)
        self.table_name = table_name
        self.default_dimension = default_dimension
        self.meta_path = self.db_path.parent / f"{self.db_path.name}.meta.json"
        self._db: Optional[lancedb.DBConnection] = None
        self._table: Optional[Table] = None

    @property
    def db(self) -> lancedb.DBConnection:
        """Lazy-load the database connection."""
        if self._db is None:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                self._db = lancedb.connect(str(self.db_path))
            except Exception as e:
                raise StoreError(f"Cannot open LanceDB at {self.db_path}: {e}") from e
            logger.info(f"Connected to LanceDB at {self.db_path}")
        return self._db

    def _existing_table(self) -> Optional[Table]:
        if self._table is None and self.table_name in self.db.table_names():
            self._table = self.db.open_table(self.table_name)
            logger.debug(f"Opened existing table: {self.table_name}")
        return self._table

    @property
    def dimension(self) -> Optional[int]:
        """Vector length of the existing table, if any."""
        table = self._existing_table()
        if table is None:
            return None
        return table.schema.field("vector").type.list_size

    def _ensure_table(self, dimension: int) -> Table:
        table = self._existing_table()
        if table is None:
            try:
                self._table = self.db.create_table(
                    self.table_name, schema=chunk_schema(dimension), mode="create"
                )
                logger.info(f"Created table {self.table_name} ({dimension}-d vectors)")
            except Exception as e:
                if "already exists" not in str(e):
                    raise StoreError(f"Cannot create table {self.table_name}: {e}") from e
                self._table = self.db.open_table(self.table_name)
            return self._table

        current = self.dimension
        if current != dimension:
            if self.has_vectors():
                raise DimensionMismatchError(current, dimension)
            self._rebuild(dimension)
        return self._table

    def _rebuild(self, dimension: int) -> None:
        """Recreate a table that holds only lite chunks with a new vector length."""
        rows = self._table.to_arrow().to_pylist()
        logger.info(f"Rebuilding lite-only table for {dimension}-d vectors ({len(rows)} chunks)")
        for row in rows:
            row["vector"] = [0.0] * dimension
        self.db.drop_table(self.table_name)
        self._table = self.db.create_table(
            self.table_name, schema=chunk_schema(dimension), mode="create"
        )
        if rows:
            self._table.add(pa.Table.from_pylist(rows, schema=chunk_schema(dimension)))

    def _rows(self, records: list[NoteRecord], dimension: int, with_vectors: bool) -> pa.Table:
        rows = []
        for record in records:
            data = record.model_dump()
            if with_vectors:
                if record.vector is None:
                    raise ValueError(f"bulk_upsert requires vectors ({record.path}#{record.chunk_ordinal})")
                if len(record.vector) != dimension:
                    raise DimensionMismatchError(dimension, len(record.vector))
            data["has_vector"] = with_vectors
            data["vector"] = record.vector if with_vectors else [0.0] * dimension
            rows.append(data)
        return pa.Table.from_pylist(rows, schema=chunk_schema(dimension))

    def _replace(self, records: list[NoteRecord], with_vectors: bool) -> None:
        if not records:
            return
        if with_vectors and records[0].vector is not None:
            dimension = len(records[0].vector)
        else:
            dimension = self.dimension or self.default_dimension

        table = self._ensure_table(dimension)
        data = self._rows(records, dimension, with_vectors)
        paths = sorted({r.path for r in records})
        scope = f"path IN ({', '.join(_quote(p) for p in paths)})"
        try:
            (
                table.merge_insert(["path", "chunk_ordinal"])
                .when_matched_update_all()
                .when_not_matched_insert_all()
                .when_not_matched_by_source_delete(scope)
                .execute(data)
            )
        except Exception as e:
            logger.error(f"Failed to write chunks for {len(paths)} notes: {e}")
            raise StoreError(f"Failed to write chunks: {e}") from e
        logger.debug(f"Stored {len(records)} chunks for {len(paths)} notes")

    def bulk_upsert(self, records: list[NoteRecord]) -> None:
        self._replace(records, with_vectors=True)

    def bulk_upsert_lite(self, records: list[NoteRecord]) -> None:
        self._replace(records, with_vectors=False)

    def delete_by_path(self, path: str) -> int:
        """
        Delete all chunks for a note.

        Args:
            path: Vault-relative note path

        Returns:
            Number of chunks deleted
        """
        table = self._existing_table()
        if table is None:
            return 0
        try:
            count_before = table.count_rows()
            table.delete(f"path = {_quote(path)}")
            deleted = count_before - table.count_rows()
        except Exception as e:
            logger.error(f"Failed to delete chunks for {path}: {e}")
            raise StoreError(f"Failed to delete chunks for {path}: {e}") from e

        if deleted > 0:
            logger.info(f"Deleted {deleted} chunks for {path}")
        return deleted

    def delete_all(self) -> None:
        """Drop the chunk table and embedding metadata."""
        if self._existing_table() is not None:
            try:
                self.db.drop_table(self.table_name)
            except Exception as e:
                logger.error(f"Failed to clear store: {e}")
                raise StoreError(f"Failed to clear store: {e}") from e
        self._table = None
        if self.meta_path.exists():
            self.meta_path.unlink()
        logger.info(f"Cleared all data from {self.table_name}")

    def vector_search(self, query_vector: list[float], top_k: int) -> list[tuple[NoteRecord, float]]:
        table = self._existing_table()
        if table is None or top_k <= 0 or not self.has_vectors():
            return []
        if len(query_vector) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(query_vector))

        results = (
            table.search(query_vector)
            .where("has_vector = true", prefilter=True)
            .limit(top_k)
            .to_list()
        )
        return [(_row_to_record(row), float(row["_distance"])) for row in results]

    def keyword_search(
        self, query: str, terms: list[str], limit: int, paths: Optional[Iterable[str]] = None
    ) -> list[tuple[NoteRecord, float]]:
        df = self._frame()
        if df is None or df.empty or limit <= 0:
            return []
        if paths is not None:
            df = df[df["path"].isin(set(paths))]
            if df.empty:
                return []

        scores = (df["title"] + "\n" + df["text"]).map(lambda s: score_keyword_match(query, terms, s))
        hits = df.assign(_score=scores)
        hits = hits[hits["_score"] > 0].sort_values(
            ["_score", "path", "chunk_ordinal"], ascending=[False, True, True]
        ).head(limit)
        return [(_row_to_record(row), float(row["_score"])) for row in hits.to_dict("records")]

    def _frame(self):
        table = self._existing_table()
        if table is None:
            return None
        return table.to_pandas()

    def has_vectors(self) -> bool:
        table = self._existing_table()
        return table is not None and table.count_rows("has_vector = true") > 0

    def _all_paths(self) -> list[str]:
        df = self._frame()
        if df is None or df.empty:
            return []
        return list(df["path"].unique())

    def content_hashes(self) -> dict[str, str]:
        df = self._frame()
        if df is None or df.empty:
            return {}
        first = df.sort_values("chunk_ordinal").drop_duplicates("path")
        return dict(zip(first["path"], first["content_hash"]))

    def lite_paths(self) -> set[str]:
        df = self._frame()
        if df is None or df.empty:
            return set()
        return set(df.loc[~df["has_vector"], "path"])

    def increment_access(self, keys: Iterable[tuple[str, int]]) -> None:
        table = self._existing_table()
        if table is None:
            return
        for path, ordinal in keys:
            table.update(
                where=f"path = {_quote(path)} AND chunk_ordinal = {int(ordinal)}",
                values_sql={"access_count": "access_count + 1"},
            )

    def note_count(self) -> int:
        return len(self._all_paths())

    def chunk_count(self) -> int:
        table = self._existing_table()
        return table.count_rows() if table is not None else 0

    def get_embedding_meta(self) -> Optional[EmbeddingMeta]:
        if not self.meta_path.exists():
            return None
        return EmbeddingMeta.model_validate_json(self.meta_path.read_text(encoding="utf-8"))

    def set_embedding_meta(self, meta: EmbeddingMeta) -> None:
        self.meta_path.parent.mkdir(parents=True, exist_ok=True)
        self.meta_path.write_text(meta.model_dump_json(), encoding="utf-8")
        logger.info(f"Recorded embedding identity: {meta.provider}/{meta.model} ({meta.dimensions}-d)")

    def __repr__(self) -> str:
        """String representation."""
        return f"LanceStore(db_path={self.db_path}, table={self.table_name})"

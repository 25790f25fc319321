"""
Pytest fixtures for vaultctx tests.

Provides temporary vaults, deterministic embedding providers, a store that
records every write, and preconfigured components.
"""

import hashlib
import math
import re
import shutil
import tempfile
from pathlib import Path

import pytest

from vaultctx.config import Config
from vaultctx.embeddings import EmbeddingOrchestrator, EmbeddingProvider
from vaultctx.exceptions import EmbeddingUnavailableError
from vaultctx.indexer import Reindexer
from vaultctx.store.memory import MemoryStore

FAKE_DIMS = 64
_WORDS = re.compile(r"\w+")


def fake_vector(text: str, dims: int = FAKE_DIMS) -> list[float]:
    """Normalized bag-of-words hash embedding; similar words give similar vectors."""
    vec = [0.0] * dims
    for word in _WORDS.findall(text.lower()):
        bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % (dims - 1)
        vec[bucket] += 1.0
    vec[-1] = 0.5
    norm = math.sqrt(sum(v * v for v in vec))
    return [v / norm for v in vec]


class FakeProvider(EmbeddingProvider):
    """Deterministic in-process provider that records its calls."""

    name = "fake"

    def __init__(self, dims: int = FAKE_DIMS, model: str = "fake-bow"):
        self._dims = dims
        self._model = model
        self.calls: list[tuple[str, str]] = []

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int:
        return self._dims

    def embed(self, text: str, purpose: str = "document") -> list[float]:
        self.calls.append((purpose, text))
        return fake_vector(text, self._dims)


class UnreachableProvider(FakeProvider):
    """Provider whose endpoint is down."""

    name = "unreachable"

    def embed(self, text: str, purpose: str = "document") -> list[float]:
        self.calls.append((purpose, text))
        raise EmbeddingUnavailableError("connection refused", provider=self.name)


class SpyStore(MemoryStore):
    """MemoryStore that records every mutating call."""

    def __init__(self):
        super().__init__()
        self.writes: list[tuple] = []

    def bulk_upsert(self, records):
        self.writes.append(("bulk_upsert", tuple(sorted({r.path for r in records}))))
        super().bulk_upsert(records)

    def bulk_upsert_lite(self, records):
        self.writes.append(("bulk_upsert_lite", tuple(sorted({r.path for r in records}))))
        super().bulk_upsert_lite(records)

    def delete_by_path(self, path):
        self.writes.append(("delete_by_path", path))
        return super().delete_by_path(path)

    def delete_all(self):
        self.writes.append(("delete_all",))
        super().delete_all()

    def set_embedding_meta(self, meta):
        self.writes.append(("set_embedding_meta", meta.model))
        super().set_embedding_meta(meta)

    def calls(self, name: str) -> list[tuple]:
        return [w for w in self.writes if w[0] == name]


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    if temp_path.exists():
        shutil.rmtree(temp_path)


def write_note(root: Path, rel: str, text: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def vault(temp_dir):
    """A small vault with notes in nested folders and a skipped directory."""
    write_note(temp_dir, "notes/a.md", "# Alpha\n\nThe deployment pipeline uses blue green releases for the API.\n")
    write_note(temp_dir, "notes/b.md", "# Beta\n\nGardening log: tomatoes need watering every morning in summer.\n")
    write_note(
        temp_dir,
        "decisions/db.md",
        "---\ntitle: Database choice\ntags: [decision, storage]\n---\n"
        "We decided to use Postgres for the billing service because of strong transactions.\n",
    )
    write_note(temp_dir, ".obsidian/workspace.md", "editor state, never indexed\n")
    write_note(temp_dir, "notes/readme.txt", "not a note\n")
    return temp_dir


@pytest.fixture
def config(vault):
    """Configuration for the vault with serial indexing and no env overrides."""
    cfg = Config(vault_root=vault, env={})
    cfg.set("performance", "max_workers", value=1)
    return cfg


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def orchestrator(provider):
    return EmbeddingOrchestrator(provider)


@pytest.fixture
def store():
    return SpyStore()


@pytest.fixture
def reindexer(vault, store, orchestrator, config):
    return Reindexer(vault, store, orchestrator, config)

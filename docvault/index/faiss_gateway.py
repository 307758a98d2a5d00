"""
FAISS Index Gateway
--------------------
Local IndexGateway backend built on faiss.IndexIDMap2(IndexFlatIP).
Vectors are L2-normalised on the way in, so inner product == cosine
similarity and scores fall in [-1, 1].

The gateway stores:
  - A FAISS ID-mapped flat index for vector search
  - A parallel dict of record metadata keyed by the FAISS int64 id
  - A string-id -> int64-id map so re-upserting an id overwrites it

Persistence (optional, when index_dir is set):
  - FAISS index      -> <index_dir>/faiss.index
  - Record metadata  -> <index_dir>/records.json
"""
from __future__ import annotations

import threading
from pathlib import Path
from typing import Optional, Sequence

import faiss
import numpy as np
from loguru import logger

from docvault.errors import ConfigurationError, ProviderError, ProviderErrorCategory
from docvault.index.gateway import IndexGateway, MetadataFilter, metadata_matches
from docvault.schemas import EmbeddingVector, IndexedRecord, Match, RecordMetadata
from docvault.utils.helpers import load_json, save_json

FAISS_FILE = "faiss.index"
RECORDS_FILE = "records.json"


def _normalise(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms = np.where(norms == 0, 1, norms)  # avoid div-by-zero
    return np.ascontiguousarray(matrix / norms, dtype=np.float32)


class FaissIndexGateway(IndexGateway):
    """
    In-process vector index with overwrite-by-id semantics.

    Writes are serialised with a lock; queries read a consistent snapshot
    under the same lock.  Nothing here ever makes a network call.
    """

    def __init__(self, dimensions: int = 768, index_dir: Optional[str | Path] = None) -> None:
        self.dimensions = dimensions
        self.index_dir = Path(index_dir) if index_dir else None
        self.faiss_index = faiss.IndexIDMap2(faiss.IndexFlatIP(dimensions))
        self._ids: dict[str, int] = {}
        self._metadata: dict[int, RecordMetadata] = {}
        self._next_id = 0
        self._lock = threading.Lock()

    # --- Write ----------------------------------------------------------------

    def upsert(self, records: Sequence[IndexedRecord]) -> None:
        """
        Insert or overwrite records by id, then persist when index_dir is set.

        All-or-nothing: if the write to disk fails the in-memory index is
        restored to its state before the call and a ProviderError is raised.
        """
        if not records:
            return

        # Later duplicates within one call win, same as sequential upserts
        latest: dict[str, IndexedRecord] = {}
        for record in records:
            self._check_dimensions(record.vector)
            latest[record.id] = record

        with self._lock:
            snapshot = self._snapshot_locked()
            try:
                overwritten = self._apply_locked(latest)
                if self.index_dir is not None:
                    self._save_locked(self.index_dir)
            except Exception:
                self._restore_locked(snapshot)
                logger.warning(
                    f"[FaissGateway] Upsert of {len(latest)} record(s) rolled back"
                )
                raise

        logger.debug(
            f"[FaissGateway] Upserted {len(latest)} record(s) "
            f"({overwritten} overwritten) | total={self.faiss_index.ntotal}"
        )

    def _apply_locked(self, latest: dict[str, IndexedRecord]) -> int:
        stale = [self._ids[rid] for rid in latest if rid in self._ids]
        if stale:
            self.faiss_index.remove_ids(np.array(stale, dtype=np.int64))

        int_ids: list[int] = []
        for rid, record in latest.items():
            int_id = self._ids.get(rid)
            if int_id is None:
                int_id = self._next_id
                self._next_id += 1
                self._ids[rid] = int_id
            self._metadata[int_id] = record.metadata
            int_ids.append(int_id)

        matrix = _normalise(np.array([r.vector for r in latest.values()], dtype=np.float32))
        self.faiss_index.add_with_ids(matrix, np.array(int_ids, dtype=np.int64))
        return len(stale)

    def _snapshot_locked(self) -> tuple:
        return (
            faiss.clone_index(self.faiss_index),
            dict(self._ids),
            dict(self._metadata),
            self._next_id,
        )

    def _restore_locked(self, snapshot: tuple) -> None:
        self.faiss_index, self._ids, self._metadata, self._next_id = snapshot

    # --- Read -----------------------------------------------------------------

    def query(
        self,
        vector: EmbeddingVector,
        top_k: int,
        metadata_filter: Optional[MetadataFilter] = None,
    ) -> list[Match]:
        self._check_dimensions(vector)
        if top_k <= 0:
            return []

        query_vec = _normalise(np.array([vector], dtype=np.float32))
        with self._lock:
            total = self.faiss_index.ntotal
            if total == 0:
                return []
            # With a filter, rank everything and filter afterwards
            k = total if metadata_filter else min(top_k, total)
            scores, ids = self.faiss_index.search(query_vec, k)

            matches: list[Match] = []
            for score, int_id in zip(scores[0], ids[0]):
                if int_id < 0:
                    continue
                meta = self._metadata.get(int(int_id))
                if meta is None or not metadata_matches(meta.model_dump(), metadata_filter):
                    continue
                matches.append(
                    Match(
                        text=meta.text,
                        file_name=meta.file_name,
                        page_number=meta.page_number,
                        score=float(score),
                        vision_description=meta.vision_description,
                    )
                )
                if len(matches) >= top_k:
                    break

        logger.debug(
            f"[FaissGateway] Query top_k={top_k} filter={metadata_filter} -> {len(matches)} match(es)"
        )
        return matches

    def _check_dimensions(self, vector: EmbeddingVector) -> None:
        if len(vector) != self.dimensions:
            raise ConfigurationError(
                f"Vector dimension {len(vector)} does not match index dimension {self.dimensions}"
            )

    # --- Persistence ----------------------------------------------------------

    def save(self, index_dir: Optional[str | Path] = None) -> None:
        """Persist FAISS index + record metadata to disk."""
        target = Path(index_dir) if index_dir else self.index_dir
        if target is None:
            raise ConfigurationError("No index_dir configured for FaissIndexGateway.save()")
        with self._lock:
            self._save_locked(target)

    def _save_locked(self, index_dir: Path) -> None:
        try:
            index_dir.mkdir(parents=True, exist_ok=True)
            faiss.write_index(self.faiss_index, str(index_dir / FAISS_FILE))
            save_json(
                {
                    "dimensions": self.dimensions,
                    "next_id": self._next_id,
                    "records": [
                        {
                            "id": rid,
                            "int_id": int_id,
                            "metadata": self._metadata[int_id].model_dump(mode="json"),
                        }
                        for rid, int_id in self._ids.items()
                    ],
                },
                index_dir / RECORDS_FILE,
            )
        except (OSError, RuntimeError) as exc:  # faiss write errors are RuntimeError
            raise ProviderError(
                f"Could not persist index to {index_dir}: {exc}",
                category=ProviderErrorCategory.GENERIC,
                provider="faiss",
            ) from exc
        logger.debug(f"[FaissGateway] Saved {len(self._ids)} records -> {index_dir}")

    @classmethod
    def load(cls, index_dir: str | Path, dimensions: int = 768) -> "FaissIndexGateway":
        """Load a persisted index; the stored dimension must match `dimensions`."""
        index_dir = Path(index_dir)
        state = load_json(index_dir / RECORDS_FILE)
        if state["dimensions"] != dimensions:
            raise ConfigurationError(
                f"Index at {index_dir} has dimension {state['dimensions']}, "
                f"embedding model produces {dimensions}"
            )

        instance = cls(dimensions=dimensions, index_dir=index_dir)
        instance.faiss_index = faiss.read_index(str(index_dir / FAISS_FILE))
        instance._next_id = state["next_id"]
        for entry in state["records"]:
            instance._ids[entry["id"]] = entry["int_id"]
            instance._metadata[entry["int_id"]] = RecordMetadata(**entry["metadata"])

        logger.info(
            f"[FaissGateway] Loaded: {instance.faiss_index.ntotal} vectors, "
            f"{len(instance._ids)} records from {index_dir}"
        )
        return instance

    @classmethod
    def open(cls, index_dir: str | Path, dimensions: int = 768) -> "FaissIndexGateway":
        """Load the index in index_dir if one exists, else start an empty one there."""
        if (Path(index_dir) / RECORDS_FILE).exists():
            return cls.load(index_dir, dimensions)
        logger.info(f"[FaissGateway] No index at {index_dir}, starting empty")
        return cls(dimensions=dimensions, index_dir=index_dir)

    def __len__(self) -> int:
        return len(self._ids)

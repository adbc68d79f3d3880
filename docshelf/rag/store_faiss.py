from __future__ import annotations

from typing import Sequence

import numpy as np

# pip install faiss-cpu
import faiss


def l2_normalize(v: np.ndarray) -> np.ndarray:
    # v: (n, d); zero rows stay zero
    norms = np.linalg.norm(v, axis=1, keepdims=True) + 1e-12
    return v / norms


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    va = np.asarray(a, dtype="float64")
    vb = np.asarray(b, dtype="float64")
    if va.shape != vb.shape:
        raise ValueError(f"vector length mismatch: {va.shape[0]} != {vb.shape[0]}")
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / denom, -1.0, 1.0))


def build_index(vectors: list[list[float]], dimensions: int) -> faiss.Index:
    index = faiss.IndexFlatIP(dimensions)  # exact; cosine == inner product when normalized
    if vectors:
        arr = np.asarray(vectors, dtype="float32").reshape(len(vectors), dimensions)
        index.add(np.ascontiguousarray(l2_normalize(arr), dtype="float32"))
    return index


def search_all(index: faiss.Index, query_vector: Sequence[float]) -> tuple[list[float], list[int]]:
    """Scores against every stored vector, best first. ids are insertion positions."""
    n = int(index.ntotal)
    if n == 0:
        return [], []
    q = np.asarray([query_vector], dtype="float32")
    q = np.ascontiguousarray(l2_normalize(q), dtype="float32")
    scores, ids = index.search(q, n)
    scores = np.clip(scores[0], -1.0, 1.0)
    return scores.tolist(), ids[0].tolist()

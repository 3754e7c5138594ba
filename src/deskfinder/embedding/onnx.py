"""Lightweight embedding provider running a MiniLM ONNX export directly.

Avoids the PyTorch stack entirely: ``WordTokenizer`` produces the input ids,
ONNX Runtime produces token states, and the sentence vector is their mean,
L2-normalised.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import numpy as np
import onnxruntime as ort

from deskfinder.embedding.encoder import EmbeddingNotReadyError
from deskfinder.embedding.tokenizer import WordTokenizer

LOGGER = logging.getLogger(__name__)

INPUT_NAMES = ("input_ids", "attention_mask", "token_type_ids")
OUTPUT_NAME = "last_hidden_state"


def mean_pool_normalize(hidden: np.ndarray) -> np.ndarray:
    """Average token states of shape ``(1, seq, dim)`` and scale to unit norm."""
    pooled = hidden[0].mean(axis=0).astype(np.float32)
    norm = float(np.linalg.norm(pooled))
    if norm == 0.0:
        norm = 1e-9
    return pooled / norm


class OnnxEmbeddingModel:
    def __init__(self, session: Any | None, tokenizer: WordTokenizer | None) -> None:
        self._session = session
        self.tokenizer = tokenizer

    @classmethod
    def from_files(cls, model_path: Path, vocab_path: Path) -> "OnnxEmbeddingModel":
        """Build a provider; missing or broken files give a not-ready provider."""
        model_path = Path(model_path)
        vocab_path = Path(vocab_path)
        if not model_path.exists() or not vocab_path.exists():
            LOGGER.warning("ONNX model or vocab missing (%s, %s)", model_path, vocab_path)
            return cls(None, None)
        try:
            tokenizer = WordTokenizer.from_file(vocab_path)
            session = ort.InferenceSession(str(model_path), providers=ort.get_available_providers())
        except Exception as exc:
            LOGGER.error("Failed to load ONNX embedding model %s: %s", model_path, exc)
            return cls(None, None)
        LOGGER.info("ONNX semantic engine ready (%s)", model_path.name)
        return cls(session, tokenizer)

    @property
    def is_ready(self) -> bool:
        return self._session is not None and self.tokenizer is not None

    def embed(self, text: str) -> np.ndarray:
        if not self.is_ready:
            raise EmbeddingNotReadyError("ONNX embedding engine is not ready")

        ids = np.asarray([self.tokenizer.encode(text)], dtype=np.int64)
        feeds = dict(zip(INPUT_NAMES, (ids, np.ones_like(ids), np.zeros_like(ids))))
        (hidden,) = self._session.run([OUTPUT_NAME], feeds)
        return mean_pool_normalize(np.asarray(hidden, dtype=np.float32))

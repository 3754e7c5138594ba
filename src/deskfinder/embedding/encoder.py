"""Embedding model management."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Literal, Protocol, Sequence, runtime_checkable

import numpy as np
from sentence_transformers import SentenceTransformer

DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"

logger = logging.getLogger(__name__)


class EmbeddingNotReadyError(RuntimeError):
    """Raised when an embedding is requested before a model is loaded."""


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Maps text to a fixed-size unit vector."""

    @property
    def is_ready(self) -> bool: ...

    def embed(self, text: str) -> np.ndarray: ...


def _check_onnx_providers() -> list[str]:
    """Return the available ONNX Runtime execution providers."""
    try:
        import onnxruntime as ort

        return ort.get_available_providers()
    except ImportError:
        return []


def detect_backend() -> Literal["torch", "onnx"]:
    """Prefer ONNX Runtime when it is installed, PyTorch otherwise."""
    providers = _check_onnx_providers()
    if providers:
        logger.info("Using ONNX backend (providers: %s)", ", ".join(providers))
        return "onnx"
    logger.info("ONNX Runtime not available, using PyTorch backend")
    return "torch"


@dataclass(slots=True)
class EmbeddingConfig:
    model_name: str = DEFAULT_MODEL
    batch_size: int = 16
    normalize: bool = True
    backend: Literal["torch", "onnx", "openvino"] | None = None
    device: str | None = None


class EmbeddingModel:
    """Thin wrapper around `SentenceTransformer` producing unit vectors.

    Loading failures leave the model in a not-ready state instead of raising:
    callers check ``is_ready`` or handle ``EmbeddingNotReadyError`` and skip
    semantic work.
    """

    def __init__(self, config: EmbeddingConfig | None = None, *, load: bool = True) -> None:
        self.config = config or EmbeddingConfig()
        self._model: SentenceTransformer | None = None
        self.dimension = 0
        if load:
            self.load()

    @property
    def is_ready(self) -> bool:
        return self._model is not None

    def load(self) -> bool:
        """Load the model, falling back to PyTorch if another backend fails."""
        if self.config.backend is None:
            self.config.backend = detect_backend()

        try:
            self._model = self._load_model()
        except Exception as e:
            if self.config.backend == "torch":
                logger.error("Failed to load embedding model %s: %s", self.config.model_name, e)
                return False
            logger.warning(
                "Failed to load model with backend '%s': %s. Falling back to PyTorch.",
                self.config.backend,
                e,
            )
            self.config.backend = "torch"
            try:
                self._model = self._load_model()
            except Exception as exc:
                logger.error("Failed to load embedding model %s: %s", self.config.model_name, exc)
                return False

        self.dimension = int(self._model.get_sentence_embedding_dimension())
        logger.info(
            "Embedding model ready: %s | Backend: %s | Dimension: %d",
            self.config.model_name,
            self.config.backend,
            self.dimension,
        )
        return True

    def _load_model(self) -> SentenceTransformer:
        return SentenceTransformer(
            self.config.model_name,
            backend=self.config.backend,
            device=self.config.device,
        )

    def embed_many(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        """Return float32 embeddings for input texts."""
        if self._model is None:
            raise EmbeddingNotReadyError("embedding model is not loaded")
        embeddings = self._model.encode(
            list(texts),
            batch_size=self.config.batch_size,
            show_progress_bar=False,
            convert_to_numpy=True,
            normalize_embeddings=self.config.normalize,
        )
        return embeddings.astype("float32", copy=False)

    def embed(self, text: str) -> np.ndarray:
        """Convenience wrapper for a single text."""
        return self.embed_many([text])[0]

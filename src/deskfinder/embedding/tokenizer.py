"""Whole-word tokenizer for BERT-style vocabularies."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Mapping

LOGGER = logging.getLogger(__name__)

TOKEN_PAD = 0
TOKEN_UNK = 100
TOKEN_CLS = 101
TOKEN_SEP = 102

MAX_SEQUENCE_LENGTH = 512

# Maximal runs of letters and digits; everything else separates.
_WORD_RE = re.compile(r"[^\W_]+")


class WordTokenizer:
    """Maps text to vocabulary ids without sub-word splitting.

    Words missing from the vocabulary become ``[UNK]``. Sequences are wrapped
    in ``[CLS]`` ... ``[SEP]`` and never exceed ``max_length`` ids.
    """

    def __init__(
        self, vocab: Mapping[str, int], *, max_length: int = MAX_SEQUENCE_LENGTH
    ) -> None:
        if max_length < 2:
            raise ValueError("max_length must leave room for [CLS] and [SEP]")
        self.vocab = dict(vocab)
        self.max_length = max_length

    @classmethod
    def from_file(cls, path: Path, **kwargs) -> "WordTokenizer":
        """Load a ``vocab.txt`` file: one token per line, id = line number."""
        with Path(path).open("r", encoding="utf-8") as handle:
            vocab = {line.rstrip("\n"): idx for idx, line in enumerate(handle)}
        LOGGER.info("Tokenizer ready (%d words)", len(vocab))
        return cls(vocab, **kwargs)

    def __len__(self) -> int:
        return len(self.vocab)

    @staticmethod
    def split(text: str) -> List[str]:
        return _WORD_RE.findall(text.lower())

    def encode(self, text: str) -> List[int]:
        ids = [TOKEN_CLS]
        ids.extend(self.vocab.get(word, TOKEN_UNK) for word in self.split(text))
        ids.append(TOKEN_SEP)

        if len(ids) > self.max_length:
            ids = ids[: self.max_length - 1]
            ids.append(TOKEN_SEP)
        return ids

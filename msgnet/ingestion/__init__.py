"""Text normalization: cleaning, segmentation, stopwords and context windows."""

from msgnet.ingestion.stopwords import DEFAULT_STOPWORDS, StopwordSet, load_stopwords_file
from msgnet.ingestion.text_normalizer import (
    ContextWindow,
    NormalizedDocument,
    Sentence,
    TextNormalizer,
    Token,
    decode_text,
)

__all__ = [
    "DEFAULT_STOPWORDS",
    "ContextWindow",
    "NormalizedDocument",
    "Sentence",
    "StopwordSet",
    "TextNormalizer",
    "Token",
    "decode_text",
    "load_stopwords_file",
]

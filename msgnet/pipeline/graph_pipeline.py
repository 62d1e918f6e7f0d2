"""End-to-end text-to-graph pipeline.

This module wires the three stages together, in order:
1. Text normalization (cleaning, sentences, stopwords, context windows)
2. Entity, relationship and concept extraction (standard or deep analysis)
3. Graph construction (consolidation, render metadata, layout)
"""

import time
from typing import List, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict

from msgnet.extraction import ExtractionMode, ExtractionResult, ExtractionWarning, Extractor
from msgnet.graph import Graph, GraphBuilder
from msgnet.ingestion import NormalizedDocument, TextNormalizer
from msgnet.utils.config import Config


class PipelineResult(BaseModel):
    """Everything one pipeline run produced."""

    model_config = ConfigDict(frozen=True)

    document: NormalizedDocument
    extraction: ExtractionResult
    warnings: List[ExtractionWarning]
    graph: Graph
    processing_time: float = 0.0


class GraphPipeline:
    """Normalizer -> Extractor -> Graph Builder for one configuration.

    Example:
        >>> pipeline = GraphPipeline(config)
        >>> result = pipeline.run(text, deep=False)
        >>> print(f"{len(result.graph.nodes)} nodes")
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        *,
        normalizer: Optional[TextNormalizer] = None,
        extractor: Optional[Extractor] = None,
        builder: Optional[GraphBuilder] = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            config: Validated configuration. If None, uses defaults.
            normalizer: Optional pre-built normalizer
            extractor: Optional pre-built extractor
            builder: Optional pre-built graph builder

        Raises:
            ConfigError: If the configuration cannot drive extraction
            InputError: If the configured stopwords file cannot be read
        """
        self.config = config or Config()
        self.normalizer = normalizer or TextNormalizer(self.config.text_processing)
        self.extractor = extractor or Extractor(self.config)
        self.builder = builder or GraphBuilder(self.config)

    def normalize(self, text: str) -> NormalizedDocument:
        return self.normalizer.process(text)

    def run(self, text: str, deep: bool = False) -> PipelineResult:
        """Run the full pipeline over ``text``.

        Raises:
            ConfigError: If deep analysis is requested while the LLM is disabled
            GraphError: On an internal graph contract violation
        """
        start = time.time()
        mode = ExtractionMode.DEEP if deep else ExtractionMode.STANDARD

        document = self.normalize(text)
        logger.info(
            "Normalized input",
            sentences=len(document.sentences),
            windows=len(document.windows),
            stopwords=document.stopword_source,
        )

        extraction, warnings = self.extractor.extract(document.windows, mode)
        for warning in warnings:
            logger.warning(
                "Extraction warning [{}]: {}",
                warning.stage,
                warning.message,
                window=warning.window_index,
            )

        graph = self.builder.build(extraction)
        elapsed = time.time() - start

        logger.success(
            f"Built graph in {elapsed:.2f}s",
            nodes=len(graph.nodes),
            edges=len(graph.edges),
            warnings=len(warnings),
        )
        return PipelineResult(
            document=document,
            extraction=extraction,
            warnings=warnings,
            graph=graph,
            processing_time=elapsed,
        )

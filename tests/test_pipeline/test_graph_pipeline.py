from __future__ import annotations

from unittest.mock import MagicMock

import openai
import pytest

from msgnet.errors import ConfigError, InputError
from msgnet.extraction import Extractor
from msgnet.extraction.llm_extractor import LLMExtractor
from msgnet.pipeline import GraphPipeline
from msgnet.utils.config import Config

TEXT = (
    "Alice owns Acme Corp. Acme Corp has a Billing Server. "
    "Alice, a senior engineer, manages the Billing Server. "
    "The billing workflow depends on the Billing Server."
)


def _unreachable_pipeline(config: Config) -> GraphPipeline:
    client = MagicMock()
    client.chat.completions.create.side_effect = openai.OpenAIError("connection refused")
    llm = LLMExtractor(config.extraction, sleep_fn=lambda _: None, client=client)
    return GraphPipeline(config, extractor=Extractor(config, llm_extractor=llm))


def test_pipeline_builds_graph() -> None:
    result = GraphPipeline(Config()).run(TEXT)

    labels = {node.label for node in result.graph.nodes}
    assert {"Alice", "Acme Corp", "Billing Server"} <= labels
    assert result.warnings == []
    assert len(result.graph.edges) == len(result.extraction.relationships)
    assert result.processing_time >= 0.0
    assert result.document.stopword_source == "default"


def test_pipeline_is_deterministic() -> None:
    pipeline = GraphPipeline(Config())

    first = pipeline.run(TEXT)
    second = pipeline.run(TEXT)

    assert first.extraction.model_dump_json() == second.extraction.model_dump_json()
    assert first.graph.model_dump_json() == second.graph.model_dump_json()


def test_repeated_mentions_collapse_into_one_node() -> None:
    result = GraphPipeline(Config()).run(TEXT)

    alice_nodes = [n for n in result.graph.nodes if n.label == "Alice"]
    assert len(alice_nodes) == 1
    assert alice_nodes[0].metadata.occurrences == 2
    ids = [node.id for node in result.graph.nodes]
    assert len(ids) == len(set(ids))


def test_confidences_stay_in_unit_interval() -> None:
    result = GraphPipeline(Config()).run(TEXT)

    for node in result.graph.nodes:
        assert 0.0 <= node.metadata.confidence <= 1.0
    for edge in result.graph.edges:
        assert 0.0 <= edge.confidence <= 1.0
        assert 1.0 <= edge.weight <= 3.0


def test_empty_text_gives_empty_graph() -> None:
    result = GraphPipeline(Config()).run("   \n\t ")

    assert result.document.sentences == ()
    assert result.graph.nodes == []
    assert result.graph.edges == []


def test_disabled_stopwords_keep_every_token() -> None:
    default = GraphPipeline(Config()).normalize(TEXT)

    config = Config()
    config.text_processing.remove_stopwords = False
    disabled = GraphPipeline(config).normalize(TEXT)

    assert disabled.stopword_source == "disabled"
    assert disabled.word_count == len(TEXT.split())
    assert default.word_count < disabled.word_count
    assert disabled.text == default.text


def test_stopwords_file_takes_precedence_over_inline(tmp_path) -> None:
    stopwords = tmp_path / "stopwords.txt"
    stopwords.write_text("# custom\nowns\n\nhas\n", encoding="utf-8")
    config = Config()
    config.text_processing.stopwords_file = str(stopwords)
    config.text_processing.custom_stopwords = ["alice"]

    document = GraphPipeline(config).normalize("Alice owns Acme Corp.")

    assert document.stopword_source == "file"
    assert document.sentences[0].working_text == "Alice Acme Corp."


def test_missing_stopwords_file_is_an_input_error(tmp_path) -> None:
    config = Config()
    config.text_processing.stopwords_file = str(tmp_path / "missing.txt")

    with pytest.raises(InputError):
        GraphPipeline(config)


def test_deep_analysis_without_llm_is_rejected() -> None:
    with pytest.raises(ConfigError):
        GraphPipeline(Config()).run(TEXT, deep=True)


def test_deep_analysis_with_unreachable_llm_degrades_to_patterns() -> None:
    config = Config()
    config.extraction.use_llm = True

    standard = GraphPipeline(Config()).run(TEXT)
    result = _unreachable_pipeline(config).run(TEXT, deep=True)

    assert result.warnings
    assert {w.stage for w in result.warnings} <= {"base", "inference"}
    standard_ids = {node.id for node in standard.graph.nodes}
    assert standard_ids <= {node.id for node in result.graph.nodes}
    # Deep phases only add relationships.
    assert len(result.graph.edges) >= len(standard.graph.edges)
    phases = {rel.phase for rel in result.extraction.relationships}
    assert "inference" in phases


def test_llm_failure_details_are_logged_as_warnings() -> None:
    config = Config()
    config.extraction.use_llm = True

    result = _unreachable_pipeline(config).run(TEXT)

    assert result.warnings
    assert all(w.stage == "base" for w in result.warnings)
    # Error details carry braces, which must not be treated as log format fields.
    assert any("{'model'" in w.message for w in result.warnings)
    assert "Billing Server" in {node.label for node in result.graph.nodes}


def test_consolidated_layout_options_flow_through() -> None:
    config = Config()
    config.graph.consolidation = "consolidated"
    config.layout.algorithm = "circular"

    graph = GraphPipeline(config).run(TEXT).graph

    assert graph.layout == "circular"
    assert all(node.position is not None for node in graph.nodes)

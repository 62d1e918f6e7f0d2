"""End-to-end pipelines."""

from msgnet.pipeline.graph_pipeline import GraphPipeline, PipelineResult

__all__ = ["GraphPipeline", "PipelineResult"]

"""Graph construction, consolidation and layout."""

from msgnet.graph.builder import DEFAULT_NODE_COLOR, DEFAULT_NODE_SHAPE, GraphBuilder
from msgnet.graph.layout import compute_layout
from msgnet.graph.models import Graph, GraphEdge, GraphNode, NodeMetadata, Position

__all__ = [
    "DEFAULT_NODE_COLOR",
    "DEFAULT_NODE_SHAPE",
    "Graph",
    "GraphBuilder",
    "GraphEdge",
    "GraphNode",
    "NodeMetadata",
    "Position",
    "compute_layout",
]

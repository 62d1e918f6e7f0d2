"""Graph data models handed to exporters."""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from msgnet.extraction.models import EntityType, RelationshipType


class Position(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float
    y: float


class NodeMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["entity", "concept"] = "entity"
    confidence: float = 0.0
    occurrences: int = 1
    attributes: Dict[str, str] = Field(default_factory=dict)
    merged_ids: List[str] = Field(default_factory=list)


class GraphNode(BaseModel):
    """Renderable node: one entity, one concept, or a consolidated group of entities."""

    model_config = ConfigDict(extra="forbid")

    id: str
    label: str
    node_type: EntityType
    color: str
    shape: str
    position: Optional[Position] = None
    metadata: NodeMetadata = Field(default_factory=NodeMetadata)


class GraphEdge(BaseModel):
    """Directed edge; parallel edges between the same nodes are allowed."""

    model_config = ConfigDict(extra="forbid")

    id: str
    source: str
    target: str
    label: str
    weight: float
    edge_type: RelationshipType
    confidence: float


class Graph(BaseModel):
    model_config = ConfigDict(extra="forbid")

    nodes: List[GraphNode] = Field(default_factory=list)
    edges: List[GraphEdge] = Field(default_factory=list)
    layout: str = "hierarchical"

    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def positions(self) -> Dict[str, Optional[Position]]:
        return {node.id: node.position for node in self.nodes}

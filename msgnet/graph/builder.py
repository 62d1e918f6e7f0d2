"""Build a renderable Graph from a frozen ExtractionResult."""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from loguru import logger

from msgnet.errors import GraphError
from msgnet.extraction.models import Entity, EntityType, ExtractionResult, Relationship
from msgnet.graph.layout import compute_layout
from msgnet.graph.models import Graph, GraphEdge, GraphNode, NodeMetadata
from msgnet.utils.config import Config

DEFAULT_NODE_COLOR = "#97C2FC"
DEFAULT_NODE_SHAPE = "dot"


def edge_weight(confidence: float) -> float:
    return 1.0 + 2.0 * confidence


class GraphBuilder:
    """Turns extraction output into nodes, edges, render metadata and positions.

    Example:
        >>> builder = GraphBuilder(config)
        >>> graph = builder.build(extraction_result)
        >>> print(f"{len(graph.nodes)} nodes, {len(graph.edges)} edges")
    """

    def __init__(self, config: Optional[Config] = None) -> None:
        self.config = config or Config()
        self.consolidation = self.config.graph.consolidation

        logger.info(
            "Initialized GraphBuilder",
            consolidation=self.consolidation,
            layout=self.config.layout.algorithm,
        )

    def build(self, result: ExtractionResult) -> Graph:
        """Build the graph and compute its layout.

        Raises:
            GraphError: If a relationship references an unknown node or the edge
                count changes during consolidation
        """
        self._check_endpoints(result)

        if self.consolidation == "consolidated":
            nodes, id_map = self._consolidated_nodes(result)
        else:
            nodes, id_map = self._unique_nodes(result)
        nodes.extend(self._concept_nodes(result))

        edges = [self._make_edge(rel, id_map) for rel in result.relationships]
        if len(edges) != len(result.relationships):
            raise GraphError(
                "Edge count changed while building graph",
                {"relationships": len(result.relationships), "edges": len(edges)},
            )
        node_ids = {node.id for node in nodes}
        for edge in edges:
            if edge.source not in node_ids or edge.target not in node_ids:
                raise GraphError(
                    f"Edge {edge.id} references a node missing from the graph",
                    {"source": edge.source, "target": edge.target},
                )

        graph = Graph(nodes=nodes, edges=edges, layout=self.config.layout.algorithm)
        compute_layout(graph, self.config.layout, self.config.physics)

        logger.info(
            "Built graph",
            nodes=len(graph.nodes),
            edges=len(graph.edges),
            consolidation=self.consolidation,
            layout=graph.layout,
        )
        return graph

    # -----------------------
    # Render metadata
    # -----------------------
    def render_style(self, node_type: EntityType) -> Tuple[str, str]:
        """Return (color, shape) for a node type, falling back to the defaults."""
        color = self.config.node_colors.get(node_type.value, DEFAULT_NODE_COLOR)
        shape = self.config.node_shapes.get(node_type.value, DEFAULT_NODE_SHAPE)
        return color, shape

    # -----------------------
    # Nodes
    # -----------------------
    def _unique_nodes(self, result: ExtractionResult) -> Tuple[List[GraphNode], Dict[str, str]]:
        nodes = []
        for entity in result.entities:
            color, shape = self.render_style(entity.entity_type)
            nodes.append(
                GraphNode(
                    id=entity.id,
                    label=entity.text,
                    node_type=entity.entity_type,
                    color=color,
                    shape=shape,
                    metadata=NodeMetadata(
                        kind="entity",
                        confidence=entity.confidence,
                        occurrences=entity.occurrences,
                        attributes=dict(entity.attributes),
                        merged_ids=[entity.id],
                    ),
                )
            )
        return nodes, {entity.id: entity.id for entity in result.entities}

    def _consolidated_nodes(
        self, result: ExtractionResult
    ) -> Tuple[List[GraphNode], Dict[str, str]]:
        """Collapse entities sharing a normalized label into one node per label."""
        groups: Dict[str, List[Entity]] = {}
        for entity in result.entities:
            groups.setdefault(entity.normalized, []).append(entity)

        nodes = []
        id_map: Dict[str, str] = {}
        for members in groups.values():
            first = members[0]
            # Stable max: the earliest member wins confidence ties.
            dominant = max(members, key=lambda e: e.confidence)

            attributes: Dict[str, str] = {}
            for member in sorted(members, key=lambda e: e.confidence):
                attributes.update(member.attributes)

            color, shape = self.render_style(dominant.entity_type)
            nodes.append(
                GraphNode(
                    id=first.id,
                    label=first.text,
                    node_type=dominant.entity_type,
                    color=color,
                    shape=shape,
                    metadata=NodeMetadata(
                        kind="entity",
                        confidence=dominant.confidence,
                        occurrences=sum(m.occurrences for m in members),
                        attributes=attributes,
                        merged_ids=[m.id for m in members],
                    ),
                )
            )
            for member in members:
                id_map[member.id] = first.id

        merged = len(result.entities) - len(nodes)
        if merged:
            logger.debug(f"Consolidated {merged} entities into shared nodes")
        return nodes, id_map

    def _concept_nodes(self, result: ExtractionResult) -> List[GraphNode]:
        color, shape = self.render_style(EntityType.CONCEPT)
        return [
            GraphNode(
                id=concept.id,
                label=concept.label,
                node_type=EntityType.CONCEPT,
                color=color,
                shape=shape,
                metadata=NodeMetadata(
                    kind="concept",
                    confidence=concept.confidence,
                    occurrences=concept.occurrences,
                    merged_ids=[concept.id],
                ),
            )
            for concept in result.concepts
        ]

    # -----------------------
    # Edges
    # -----------------------
    def _make_edge(self, relationship: Relationship, id_map: Dict[str, str]) -> GraphEdge:
        return GraphEdge(
            id=relationship.id,
            source=id_map.get(relationship.source_id, relationship.source_id),
            target=id_map.get(relationship.target_id, relationship.target_id),
            label=relationship.label,
            weight=edge_weight(relationship.confidence),
            edge_type=relationship.relationship_type,
            confidence=relationship.confidence,
        )

    def _check_endpoints(self, result: ExtractionResult) -> None:
        node_ids = result.node_ids()
        for relationship in result.relationships:
            for endpoint in (relationship.source_id, relationship.target_id):
                if endpoint not in node_ids:
                    raise GraphError(
                        f"Relationship {relationship.id} references unknown node {endpoint}",
                        {"source_id": relationship.source_id, "target_id": relationship.target_id},
                    )

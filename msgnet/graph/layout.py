"""Node placement: hierarchical, force-directed and circular layouts.

All three are deterministic for a given graph and configuration. The force
layout draws its initial placement from a seeded generator.
"""

from __future__ import annotations

import math
import random
from collections import deque
from typing import Dict, List, Sequence, Tuple

from loguru import logger

from msgnet.extraction.models import EntityType
from msgnet.graph.models import Graph, GraphEdge, GraphNode, Position
from msgnet.utils.config import LayoutConfig, PhysicsConfig

Point = Tuple[float, float]

_TYPE_ORDER = {node_type: index for index, node_type in enumerate(EntityType)}
_MIN_DISTANCE = 0.01


def hierarchy_levels(node_ids: Sequence[str], edges: Sequence[GraphEdge]) -> Dict[str, int]:
    """BFS depth from the nodes without incoming edges.

    Self-loops do not count as incoming edges. Nodes no root can reach (cycle
    members) are placed at level 0.
    """
    known = set(node_ids)
    incoming = {e.target for e in edges if e.source != e.target}
    adjacency: Dict[str, List[str]] = {node_id: [] for node_id in node_ids}
    for edge in edges:
        if edge.source != edge.target and edge.source in known and edge.target in known:
            adjacency[edge.source].append(edge.target)

    levels: Dict[str, int] = {}
    queue: deque[str] = deque()
    for node_id in node_ids:
        if node_id not in incoming:
            levels[node_id] = 0
            queue.append(node_id)

    while queue:
        current = queue.popleft()
        for neighbour in adjacency[current]:
            if neighbour not in levels:
                levels[neighbour] = levels[current] + 1
                queue.append(neighbour)

    for node_id in node_ids:
        levels.setdefault(node_id, 0)
    return levels


def hierarchical_layout(
    node_ids: Sequence[str], edges: Sequence[GraphEdge], spacing: float
) -> Dict[str, Point]:
    levels = hierarchy_levels(node_ids, edges)

    rows: Dict[int, List[str]] = {}
    for node_id in node_ids:
        rows.setdefault(levels[node_id], []).append(node_id)

    positions: Dict[str, Point] = {}
    for level, row in rows.items():
        count = len(row)
        for index, node_id in enumerate(row):
            positions[node_id] = ((index - (count - 1) / 2) * spacing, level * spacing)
    return positions


def circular_layout(nodes: Sequence[GraphNode], spacing: float) -> Dict[str, Point]:
    ordered = sorted(
        nodes, key=lambda n: (_TYPE_ORDER[n.node_type], n.label.casefold(), n.id)
    )
    count = len(ordered)
    if count == 0:
        return {}
    if count == 1:
        return {ordered[0].id: (0.0, 0.0)}

    radius = max(spacing, count * spacing / (2 * math.pi))
    positions: Dict[str, Point] = {}
    for index, node in enumerate(ordered):
        angle = 2 * math.pi * index / count
        positions[node.id] = (radius * math.cos(angle), radius * math.sin(angle))
    return positions


def force_layout(
    node_ids: Sequence[str],
    edges: Sequence[GraphEdge],
    layout: LayoutConfig,
    physics: PhysicsConfig,
) -> Dict[str, Point]:
    """Seeded spring-electrical relaxation.

    Repulsion between every pair is ``repulsion * spring_length / d^2``.
    Each edge pulls its endpoints with ``spring_constant * (d - spring_length)``.
    A node moves at most ``spacing`` per round.
    """
    rng = random.Random(layout.seed)
    extent = layout.spacing * max(1.0, math.sqrt(len(node_ids)))
    positions: Dict[str, List[float]] = {
        node_id: [rng.uniform(-extent / 2, extent / 2), rng.uniform(-extent / 2, extent / 2)]
        for node_id in node_ids
    }
    if not physics.enabled or len(node_ids) < 2:
        return {node_id: (p[0], p[1]) for node_id, p in positions.items()}

    springs = [
        (e.source, e.target)
        for e in edges
        if e.source != e.target and e.source in positions and e.target in positions
    ]

    rounds = 0
    for rounds in range(1, physics.iterations + 1):
        forces = {node_id: [0.0, 0.0] for node_id in node_ids}

        for i, first in enumerate(node_ids):
            for second in node_ids[i + 1 :]:
                dx, dy, distance = _delta(positions[first], positions[second], i)
                magnitude = physics.repulsion * physics.spring_length / (distance * distance)
                fx, fy = dx / distance * magnitude, dy / distance * magnitude
                forces[first][0] -= fx
                forces[first][1] -= fy
                forces[second][0] += fx
                forces[second][1] += fy

        for source, target in springs:
            dx, dy, distance = _delta(positions[source], positions[target], 0)
            magnitude = physics.spring_constant * (distance - physics.spring_length)
            fx, fy = dx / distance * magnitude, dy / distance * magnitude
            forces[source][0] += fx
            forces[source][1] += fy
            forces[target][0] -= fx
            forces[target][1] -= fy

        max_displacement = 0.0
        for node_id in node_ids:
            fx, fy = forces[node_id]
            step = math.hypot(fx, fy)
            if step > layout.spacing:
                fx, fy = fx / step * layout.spacing, fy / step * layout.spacing
                step = layout.spacing
            positions[node_id][0] += fx
            positions[node_id][1] += fy
            max_displacement = max(max_displacement, step)

        if physics.stabilization and max_displacement < physics.stabilization_threshold:
            break

    logger.debug("Force layout relaxed", rounds=rounds, nodes=len(node_ids))
    return {node_id: (p[0], p[1]) for node_id, p in positions.items()}


def _delta(a: Sequence[float], b: Sequence[float], salt: int) -> Tuple[float, float, float]:
    dx, dy = b[0] - a[0], b[1] - a[1]
    distance = math.hypot(dx, dy)
    if distance < _MIN_DISTANCE:
        # Coincident nodes: push apart along a fixed, index-dependent direction.
        angle = (salt + 1) * 2.399963
        dx, dy = math.cos(angle) * _MIN_DISTANCE, math.sin(angle) * _MIN_DISTANCE
        distance = _MIN_DISTANCE
    return dx, dy, distance


def compute_layout(graph: Graph, layout: LayoutConfig, physics: PhysicsConfig) -> Graph:
    """Write node positions for ``layout.algorithm`` into ``graph`` and return it."""
    node_ids = graph.node_ids()
    if layout.algorithm == "hierarchical":
        points = hierarchical_layout(node_ids, graph.edges, layout.spacing)
    elif layout.algorithm == "force":
        points = force_layout(node_ids, graph.edges, layout, physics)
    else:
        points = circular_layout(graph.nodes, layout.spacing)

    for node in graph.nodes:
        x, y = points[node.id]
        node.position = Position(x=round(x, 4) + 0.0, y=round(y, 4) + 0.0)

    graph.layout = layout.algorithm
    return graph

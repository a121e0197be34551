"""
Edge Collapse
=============

Merges the two endpoints of an edge into the first one, placed at the
edge's optimal position, and repairs the topology around it.
"""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .mesh import Mesh
from .qem import QuadricErrorMetrics


@dataclass
class CollapseRecord:
    """Outcome of one edge collapse."""
    kept: int
    removed: int
    cost: float
    position: np.ndarray
    affected_edges: List[int]
    deleted_faces: int


def collapse_edge(mesh: Mesh, edge_index: int,
                  qem: Optional[QuadricErrorMetrics] = None) -> CollapseRecord:
    """
    Collapse mesh.edges[edge_index].

    The edge's first vertex survives at the optimal position, the second is
    deleted. Edges and faces at the removed vertex are remapped onto the
    survivor (degenerate or duplicated ones are deleted), the survivor's
    quadric is rebuilt from its live faces, the costs of its edges are
    re-solved and its uv/color are blended between the two endpoints.

    Raises:
        ValueError: If the edge or one of its endpoints is already deleted
    """
    if qem is None:
        qem = QuadricErrorMetrics.from_config(mesh.config)

    edge = mesh.edges[edge_index]
    kept, removed = edge.v1, edge.v2
    if edge.deleted:
        raise ValueError(f"Edge {edge_index} is already deleted")
    if mesh.vertices[kept].deleted or mesh.vertices[removed].deleted:
        raise ValueError(f"Edge {edge_index} references a deleted vertex")

    v_kept = mesh.vertices[kept]
    v_removed = mesh.vertices[removed]
    p1, p2 = v_kept.position.copy(), v_removed.position.copy()
    uv1, uv2 = v_kept.tex_coord.copy(), v_removed.tex_coord.copy()
    c1, c2 = v_kept.color.copy(), v_removed.color.copy()
    new_position = np.array(edge.optimal_position, dtype=float)
    cost = edge.cost

    v_kept.position = new_position.copy()
    v_removed.position = new_position.copy()

    mesh.delete_vertex(removed)
    mesh.delete_edge(edge_index)

    affected = mesh.remap_edges(removed, kept)
    deleted_faces = mesh.remap_faces(removed, kept)

    qem.compute_vertex_quadric(mesh, kept)
    for ei in affected:
        qem.compute_edge_cost(mesh, mesh.edges[ei])

    t = interpolation_factor(new_position, p1, p2, qem.determinant_epsilon)
    v_kept.tex_coord = uv1 + t * (uv2 - uv1)
    v_kept.color = c1 + t * (c2 - c1)

    return CollapseRecord(kept=kept, removed=removed, cost=cost,
                          position=new_position, affected_edges=affected,
                          deleted_faces=deleted_faces)


def interpolation_factor(position: np.ndarray, p1: np.ndarray, p2: np.ndarray,
                         epsilon: float = 1e-10) -> float:
    """
    Blend weight of `position` along p1 -> p2: |position - p1| / |p2 - p1|
    clamped to [0, 1], 0.5 when the endpoints coincide.
    """
    total = float(np.linalg.norm(p2 - p1))
    if total <= epsilon:
        return 0.5
    return float(np.clip(np.linalg.norm(position - p1) / total, 0.0, 1.0))

"""
Quadric Error Metrics (QEM) Implementation
==========================================

Per-vertex quadric accumulation and the per-edge cost / optimal
position solver.

Based on: "Surface Simplification Using Quadric Error Metrics"
by Michael Garland and Paul S. Heckbert (SIGGRAPH 1997)
"""

from typing import Optional, Tuple

import numpy as np

from .config import SimplificationConfig
from .mesh import Edge, Face, Mesh


class QuadricErrorMetrics:
    """
    Quadric accumulation and edge cost solving over a Mesh.

    The fundamental quadric Q for a plane ax + by + cz + d = 0 is the 4x4 matrix:
    Q = p * p^T where p = [a, b, c, d]^T

    The error of a vertex v = [x, y, z, 1]^T with respect to Q is:
    error(v) = v^T * Q * v

    When collapsing an edge (v1, v2) -> v_new, the combined quadric is:
    Q_new = Q1 + Q2
    """

    def __init__(self, determinant_epsilon: float = 1e-10):
        """
        Initialize QEM calculator.

        Args:
            determinant_epsilon: |det| threshold below which the constrained
                                 system is solved by the endpoint/midpoint fallback
        """
        self.determinant_epsilon = determinant_epsilon

    @classmethod
    def from_config(cls, config: SimplificationConfig) -> "QuadricErrorMetrics":
        return cls(determinant_epsilon=config.determinant_epsilon)

    def compute_face_plane(self, v0: np.ndarray, v1: np.ndarray, v2: np.ndarray) -> np.ndarray:
        """
        Compute the plane equation coefficients for a triangle face.

        Args:
            v0, v1, v2: Triangle vertices as 3D points

        Returns:
            Plane coefficients [a, b, c, d] where [a,b,c] is unit normal,
            zeros for a degenerate triangle
        """
        return Face.from_positions((0, 1, 2), v0, v1, v2).plane

    def compute_fundamental_quadric(self, plane: np.ndarray) -> np.ndarray:
        """
        Compute the fundamental error quadric for a plane.

        Q = p * p^T where p = [a, b, c, d]
        """
        return np.outer(plane, plane)

    def compute_vertex_quadric(self, mesh: Mesh, vertex_index: int) -> np.ndarray:
        """
        Recompute one vertex quadric from the live faces referencing it.

        Used after a collapse, when only the surviving vertex changed.

        Returns:
            The new 4x4 quadric (also stored on the vertex)
        """
        Q = np.zeros((4, 4))
        for fi in mesh.live_faces_at(vertex_index):
            Q += self.compute_fundamental_quadric(mesh.faces[fi].plane)

        mesh.vertices[vertex_index].quadric = Q
        return Q

    def compute_all_quadrics(self, mesh: Mesh):
        """
        Recompute every vertex quadric in a single pass over the faces.

        Each live face adds its fundamental quadric to all three of its vertices.
        """
        for vertex in mesh.vertices:
            vertex.quadric = np.zeros((4, 4))

        for _, face in mesh.iter_live_faces():
            Q = self.compute_fundamental_quadric(face.plane)
            for vi in face.indices:
                mesh.vertices[vi].quadric += Q

    def compute_optimal_position(self, Q: np.ndarray, v1: np.ndarray,
                                 v2: np.ndarray) -> Tuple[np.ndarray, float]:
        """
        Compute the optimal position for an edge collapse.

        Solves:
        [Q[0:3, 0:3]  Q[0:3, 3] ] [x]   [0]
        [    0    0    0      1 ] [1] = [1]

        If the matrix is singular, falls back to testing endpoints and midpoint.

        Args:
            Q: Combined 4x4 quadric matrix
            v1, v2: Edge endpoint positions

        Returns:
            Tuple of (optimal_position, error)
        """
        A = Q.copy()
        A[3, :] = [0.0, 0.0, 0.0, 1.0]
        b = np.array([0.0, 0.0, 0.0, 1.0])

        if abs(np.linalg.det(A)) > self.determinant_epsilon:
            v_opt = np.linalg.solve(A, b)
            return v_opt[:3], self.compute_error(Q, v_opt[:3])

        # Fallback: test endpoints and midpoint
        candidates = [v1, v2, (v1 + v2) / 2]
        best_pos = v1
        best_error = float('inf')

        for pos in candidates:
            error = self.compute_error(Q, pos)
            if error < best_error:
                best_error = error
                best_pos = pos

        return np.array(best_pos, dtype=float), best_error

    def compute_error(self, Q: np.ndarray, v: np.ndarray) -> float:
        """
        Compute the quadric error for a vertex position.

        error = v^T * Q * v where v is [x, y, z, 1]
        """
        v_homo = np.array([v[0], v[1], v[2], 1.0])
        error = float(v_homo @ Q @ v_homo)
        return max(0.0, error)  # Clamp rounding noise

    def compute_edge_cost(self, mesh: Mesh, edge: Edge) -> float:
        """
        Overwrite the edge's cost and optimal position from its endpoints'
        current quadrics. Vertices and faces are only read.
        """
        a = mesh.vertices[edge.v1]
        b = mesh.vertices[edge.v2]
        position, error = self.compute_optimal_position(
            a.quadric + b.quadric, a.position, b.position
        )
        edge.optimal_position = position
        edge.cost = error
        return error

    def compute_all_edge_costs(self, mesh: Mesh):
        """Solve every live edge once."""
        for edge in mesh.edges:
            if not edge.deleted:
                self.compute_edge_cost(mesh, edge)


def initialize_all_quadrics(mesh: Mesh, qem: Optional[QuadricErrorMetrics] = None):
    """Fill every vertex quadric; run once before the first simplification step."""
    qem = qem if qem is not None else QuadricErrorMetrics.from_config(mesh.config)
    qem.compute_all_quadrics(mesh)


def initialize_all_edge_costs(mesh: Mesh, qem: Optional[QuadricErrorMetrics] = None):
    """Solve every live edge; run after initialize_all_quadrics."""
    qem = qem if qem is not None else QuadricErrorMetrics.from_config(mesh.config)
    qem.compute_all_edge_costs(mesh)

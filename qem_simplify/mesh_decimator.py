"""
Mesh Decimator
==============

Priority-driven simplification scheduler: repeatedly collapses the
cheapest edge, with lazy cost invalidation through per-edge dirty flags.
"""

import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import numpy as np

from .collapse import CollapseRecord, collapse_edge
from .mesh import Edge, Mesh
from .qem import QuadricErrorMetrics

logger = logging.getLogger(__name__)


@dataclass(order=True)
class EdgeCollapseCandidate:
    """Priority queue entry: a value snapshot of an edge."""
    cost: float
    sequence: int  # FIFO among equal costs
    v1: int = field(compare=False)
    v2: int = field(compare=False)


class MeshDecimator:
    """
    Mesh simplification using Quadric Error Metrics (QEM).

    Implements iterative edge collapse with:
    - Priority queue of edge snapshots ordered by collapse cost
    - Lazy updates: edges touched by a collapse are flagged dirty and
      re-solved only when popped
    - Batches capped at a fraction of the original vertex count
    """

    def __init__(self, mesh: Mesh,
                 qem: Optional[QuadricErrorMetrics] = None,
                 batch_fraction: Optional[float] = None,
                 max_error: Optional[float] = None):
        """
        Initialize the mesh decimator.

        Args:
            mesh: Mesh to simplify in place
            qem: Cost solver (default built from mesh.config)
            batch_fraction: Fraction of the original vertex count collapsed
                            per simplify_one_batch call (default from mesh.config)
            max_error: Maximum allowed error per collapse (default from
                       mesh.config, None = no limit)
        """
        config = mesh.config
        self.mesh = mesh
        self.qem = qem if qem is not None else QuadricErrorMetrics.from_config(config)
        self.batch_fraction = batch_fraction if batch_fraction is not None else config.batch_fraction
        self.max_error = max_error if max_error is not None else config.max_error

        if not 0.0 < self.batch_fraction <= 1.0:
            raise ValueError(f"batch_fraction must be in (0, 1], got {self.batch_fraction}")

        self._priority_queue: List[EdgeCollapseCandidate] = []
        self._sequence = itertools.count()
        self._collapse_history: List[CollapseRecord] = []

    @property
    def is_ready(self) -> bool:
        """True once the priority queue holds entries."""
        return bool(self._priority_queue)

    @property
    def batch_limit(self) -> int:
        return max(1, int(self.mesh.original_vertex_count * self.batch_fraction))

    def initialize(self):
        """Compute all quadrics, then all edge costs."""
        self.qem.compute_all_quadrics(self.mesh)
        self.qem.compute_all_edge_costs(self.mesh)

    def simplify_one_batch(self, max_collapses: Optional[int] = None) -> int:
        """
        Collapse edges in cost order until the batch limit is reached or the
        queue runs dry.

        Quadrics must already be initialized. The first call (or any call
        that finds the queue empty) solves every live edge and fills the queue.

        Args:
            max_collapses: Override for the batch limit

        Returns:
            Number of collapses performed
        """
        if not self._priority_queue:
            self._initialize_queue()

        limit = self.batch_limit if max_collapses is None else max(1, max_collapses)
        collapses = 0

        while self._priority_queue:
            candidate = heapq.heappop(self._priority_queue)

            edge_index = self.mesh.find_edge(candidate.v1, candidate.v2)
            if edge_index is None:
                continue
            edge = self.mesh.edges[edge_index]
            if edge.deleted:
                continue

            if edge.dirty:
                self.qem.compute_edge_cost(self.mesh, edge)
                edge.dirty = False
                self._push(edge)
                continue

            # a fresher entry for this edge is queued
            if candidate.cost != edge.cost:
                continue

            if self.max_error is not None and edge.cost > self.max_error:
                self._push(edge)
                logger.debug(f"Reached max error threshold: {edge.cost:.6f} > {self.max_error}")
                break

            record = collapse_edge(self.mesh, edge_index, self.qem)
            self._collapse_history.append(record)

            for ei in self.mesh.live_edges_at(record.kept):
                touched = self.mesh.edges[ei]
                touched.dirty = True
                self._push(touched)

            collapses += 1
            if collapses >= limit:
                break

        logger.debug(f"Batch collapsed {collapses} edges, "
                     f"{self.mesh.live_vertex_count} vertices remain")
        return collapses

    def _initialize_queue(self):
        """Solve every live edge and queue it."""
        self._priority_queue = []
        for edge in self.mesh.edges:
            if edge.deleted:
                continue
            self.qem.compute_edge_cost(self.mesh, edge)
            edge.dirty = False
            self._priority_queue.append(self._snapshot(edge))
        heapq.heapify(self._priority_queue)
        logger.debug(f"Priority queue initialized with {len(self._priority_queue)} edges")

    def _snapshot(self, edge: Edge) -> EdgeCollapseCandidate:
        return EdgeCollapseCandidate(cost=edge.cost, sequence=next(self._sequence),
                                     v1=edge.v1, v2=edge.v2)

    def _push(self, edge: Edge):
        heapq.heappush(self._priority_queue, self._snapshot(edge))

    def decimate(self, target_faces: Optional[int] = None,
                 target_ratio: Optional[float] = None,
                 progress_callback: Optional[Callable[[float], None]] = None) -> Mesh:
        """
        Simplify in batches down to a target face count or ratio.

        Initializes quadrics and costs when no batch has run yet. Stops early
        when a batch makes no progress (queue exhausted or max_error reached).

        Args:
            target_faces: Target number of faces (mutually exclusive with target_ratio)
            target_ratio: Target ratio of faces to keep (0.0 to 1.0)
            progress_callback: Optional callback for progress updates

        Returns:
            The simplified mesh (same object, modified in place)
        """
        if (target_faces is None) == (target_ratio is None):
            raise ValueError("Must specify either target_faces or target_ratio")

        initial_faces = self.mesh.live_face_count
        if target_ratio is not None:
            if not 0.0 <= target_ratio <= 1.0:
                raise ValueError(f"target_ratio must be in [0, 1], got {target_ratio}")
            target_faces = int(initial_faces * target_ratio)
        faces_to_remove = initial_faces - target_faces

        if not self._priority_queue and not self._collapse_history:
            self.initialize()

        logger.info(f"Starting decimation: {initial_faces} -> {target_faces} faces")

        last_progress = 0.0
        while self.mesh.live_face_count > target_faces:
            # each manifold collapse removes two faces
            remaining = (self.mesh.live_face_count - target_faces) // 2
            if self.simplify_one_batch(min(self.batch_limit, max(1, remaining))) == 0:
                logger.info("No more valid edges to collapse")
                break

            if progress_callback is not None:
                removed = initial_faces - self.mesh.live_face_count
                progress = removed / max(1, faces_to_remove)
                if progress - last_progress >= 0.05:  # Update every 5%
                    progress_callback(min(1.0, progress))
                    last_progress = progress

        logger.info(f"Decimation complete: {self.mesh.live_face_count} faces, "
                    f"{len(self._collapse_history)} collapses")
        return self.mesh

    def get_collapse_history(self) -> List[CollapseRecord]:
        """Get the history of edge collapses performed."""
        return list(self._collapse_history)

    def get_vertex_errors(self) -> np.ndarray:
        """
        Quadric error of every live vertex at its current position, in
        vertex order. Useful for error visualization after decimation.
        """
        return np.array([
            self.qem.compute_error(v.quadric, v.position)
            for v in self.mesh.vertices if not v.deleted
        ])

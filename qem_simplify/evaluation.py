"""
Mesh Evaluation Module
======================

Quantitative comparison of an original and a simplified mesh:
- Hausdorff distance
- Chamfer distance
- Vertex/Face count statistics
- Surface area error
"""

import logging
from typing import Dict, Optional, Tuple, Union

import numpy as np
import trimesh
from scipy.spatial import cKDTree

from .mesh import Mesh

logger = logging.getLogger(__name__)

MeshLike = Union[Mesh, trimesh.Trimesh]


def as_trimesh(mesh: MeshLike) -> trimesh.Trimesh:
    """Accept either a simplification Mesh or a trimesh object."""
    if isinstance(mesh, Mesh):
        return mesh.to_trimesh()
    return mesh


class MeshEvaluator:
    """
    Evaluation tools for assessing mesh simplification quality.

    Distances are measured between point sets sampled on both surfaces.
    """

    def __init__(self, sample_points: int = 10000, seed: Optional[int] = None):
        """
        Initialize evaluator.

        Args:
            sample_points: Number of points to sample for distance metrics
            seed: Seed for surface sampling, for repeatable metrics
        """
        self.sample_points = sample_points
        self.seed = seed

    def compute_all_metrics(self, original: MeshLike,
                            simplified: MeshLike) -> Dict[str, float]:
        """
        Compute all available metrics.

        Args:
            original: Original high-resolution mesh
            simplified: Simplified mesh

        Returns:
            Dictionary of metric names to values
        """
        original = as_trimesh(original)
        simplified = as_trimesh(simplified)
        metrics = {}

        # Count statistics
        metrics['original_faces'] = len(original.faces)
        metrics['simplified_faces'] = len(simplified.faces)
        metrics['original_vertices'] = len(original.vertices)
        metrics['simplified_vertices'] = len(simplified.vertices)
        metrics['face_reduction_ratio'] = len(simplified.faces) / max(1, len(original.faces))
        metrics['vertex_reduction_ratio'] = len(simplified.vertices) / max(1, len(original.vertices))

        # Geometric metrics
        points1, points2 = self._sample_pair(original, simplified)
        hausdorff, forward, backward = self._hausdorff(points1, points2)
        metrics['hausdorff_distance'] = hausdorff
        metrics['hausdorff_forward'] = forward
        metrics['hausdorff_backward'] = backward
        metrics['chamfer_distance'] = self._chamfer(points1, points2)

        # Surface area
        metrics['original_area'] = float(original.area)
        metrics['simplified_area'] = float(simplified.area)
        metrics['area_error'] = abs(metrics['simplified_area'] - metrics['original_area']) / \
                                max(metrics['original_area'], 1e-10)

        return metrics

    def hausdorff_distance(self, mesh1: MeshLike,
                           mesh2: MeshLike) -> Tuple[float, float, float]:
        """
        Compute symmetric Hausdorff distance between two meshes.

        Returns:
            Tuple of (symmetric_hausdorff, forward, backward) distances
        """
        points1, points2 = self._sample_pair(as_trimesh(mesh1), as_trimesh(mesh2))
        return self._hausdorff(points1, points2)

    def chamfer_distance(self, mesh1: MeshLike, mesh2: MeshLike) -> float:
        """
        Compute symmetric Chamfer distance between two meshes: the sum of
        mean squared nearest-neighbour distances in both directions.
        """
        points1, points2 = self._sample_pair(as_trimesh(mesh1), as_trimesh(mesh2))
        return self._chamfer(points1, points2)

    def _sample_pair(self, mesh1: trimesh.Trimesh,
                     mesh2: trimesh.Trimesh) -> Tuple[np.ndarray, np.ndarray]:
        return self._sample(mesh1), self._sample(mesh2)

    def _sample(self, mesh: trimesh.Trimesh) -> np.ndarray:
        # Fall back to vertices when there is no surface to sample
        if len(mesh.faces) == 0 or mesh.area <= 0:
            return np.asarray(mesh.vertices, dtype=float).reshape(-1, 3)
        return mesh.sample(self.sample_points, seed=self.seed)

    def _hausdorff(self, points1: np.ndarray,
                   points2: np.ndarray) -> Tuple[float, float, float]:
        forward, backward = self._nearest_distances(points1, points2)
        hausdorff_forward = float(np.max(forward))
        hausdorff_backward = float(np.max(backward))
        return max(hausdorff_forward, hausdorff_backward), hausdorff_forward, hausdorff_backward

    def _chamfer(self, points1: np.ndarray, points2: np.ndarray) -> float:
        forward, backward = self._nearest_distances(points1, points2)
        return float(np.mean(forward ** 2)) + float(np.mean(backward ** 2))

    def _nearest_distances(self, points1: np.ndarray,
                           points2: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        if len(points1) == 0 or len(points2) == 0:
            raise ValueError("Cannot measure distances against an empty mesh")
        tree1 = cKDTree(points1)
        tree2 = cKDTree(points2)
        forward, _ = tree2.query(points1)
        backward, _ = tree1.query(points2)
        return forward, backward

    def generate_report(self, metrics: Dict[str, float],
                        method_name: str = "QEM") -> str:
        """
        Generate a human-readable evaluation report.

        Args:
            metrics: Dictionary of metric values
            method_name: Name of the simplification method

        Returns:
            Formatted report string
        """
        lines = [
            "=" * 60,
            f"Mesh Simplification Report - {method_name}",
            "=" * 60,
            "",
            "MESH STATISTICS",
            "-" * 40,
            f"  Original:    {metrics.get('original_faces', 'N/A'):>8} faces, "
            f"{metrics.get('original_vertices', 'N/A'):>8} vertices",
            f"  Simplified:  {metrics.get('simplified_faces', 'N/A'):>8} faces, "
            f"{metrics.get('simplified_vertices', 'N/A'):>8} vertices",
            f"  Reduction:   {metrics.get('face_reduction_ratio', 0)*100:>7.2f}% of original faces",
            "",
            "GEOMETRIC ACCURACY",
            "-" * 40,
            f"  Hausdorff Distance:    {metrics.get('hausdorff_distance', np.nan):>12.6f}",
            f"    Forward:             {metrics.get('hausdorff_forward', np.nan):>12.6f}",
            f"    Backward:            {metrics.get('hausdorff_backward', np.nan):>12.6f}",
            f"  Chamfer Distance:      {metrics.get('chamfer_distance', np.nan):>12.6f}",
            f"  Area Error:            {metrics.get('area_error', 0)*100:>11.4f}%",
            "=" * 60,
        ]

        if 'runtime' in metrics:
            lines.insert(-1, f"  Runtime:               {metrics['runtime']:>11.4f} seconds")

        return "\n".join(lines)

    def log_report(self, metrics: Dict[str, float], method_name: str = "QEM"):
        """Log the evaluation report at INFO level."""
        logger.info("\n" + self.generate_report(metrics, method_name))

"""
Mesh Simplification using Quadric Error Metrics (QEM)
=====================================================

Greedy edge-collapse simplification of a triangulated surface, after
"Surface Simplification Using Quadric Error Metrics"
by Michael Garland and Paul S. Heckbert (SIGGRAPH 1997).
"""

from .config import SimplificationConfig
from .mesh import Edge, Face, Mesh, MeshInputError, Vertex, build_mesh
from .qem import QuadricErrorMetrics, initialize_all_edge_costs, initialize_all_quadrics
from .collapse import CollapseRecord, collapse_edge
from .mesh_decimator import MeshDecimator
from .evaluation import MeshEvaluator

__version__ = "1.0.0"
__all__ = [
    "SimplificationConfig",
    "Vertex",
    "Edge",
    "Face",
    "Mesh",
    "MeshInputError",
    "build_mesh",
    "QuadricErrorMetrics",
    "initialize_all_quadrics",
    "initialize_all_edge_costs",
    "CollapseRecord",
    "collapse_edge",
    "MeshDecimator",
    "MeshEvaluator",
]

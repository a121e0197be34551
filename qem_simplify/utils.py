"""
Utility Functions
=================

trimesh adapters: loading meshes, unrolling them into the triangle-unrolled
arrays Mesh.build consumes, and sample mesh creation.
"""

import logging
from typing import Optional, Tuple

import numpy as np
import trimesh

from .config import SimplificationConfig
from .mesh import Mesh

logger = logging.getLogger(__name__)


def load_mesh(path: str) -> trimesh.Trimesh:
    """
    Load a mesh from file.

    Supports: OBJ, PLY, STL, OFF, GLB and other formats supported by trimesh.
    Scenes are concatenated into a single mesh.

    Args:
        path: Path to mesh file

    Returns:
        Loaded trimesh object
    """
    mesh = trimesh.load(path, force='mesh')

    if isinstance(mesh, trimesh.Scene):
        meshes = [geom for geom in mesh.geometry.values()
                  if isinstance(geom, trimesh.Trimesh)]
        if not meshes:
            raise ValueError(f"No valid meshes found in {path}")
        mesh = trimesh.util.concatenate(meshes)

    logger.info(f"Loaded {path}: {len(mesh.vertices)} vertices, {len(mesh.faces)} faces")
    return mesh


def unroll_trimesh(mesh: trimesh.Trimesh) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Expand an indexed mesh into per-corner arrays.

    Corner 3*i + k is vertex k of face i. UVs are zero when the mesh
    carries no texture coordinates.

    Returns:
        (positions (3F, 3), uvs (3F, 2), normals (3F, 3))
    """
    faces = np.asarray(mesh.faces, dtype=np.int64)
    positions = np.asarray(mesh.vertices, dtype=float)[faces].reshape(-1, 3)
    normals = np.asarray(mesh.vertex_normals, dtype=float)[faces].reshape(-1, 3)

    uv = getattr(mesh.visual, 'uv', None)
    if uv is not None and len(uv) == len(mesh.vertices):
        uvs = np.asarray(uv, dtype=float)[faces].reshape(-1, 2)
    else:
        uvs = np.zeros((len(positions), 2))

    return positions, uvs, normals


def mesh_from_trimesh(mesh: trimesh.Trimesh,
                      config: Optional[SimplificationConfig] = None) -> Mesh:
    """Unroll a trimesh object and build a simplification Mesh from it."""
    positions, uvs, normals = unroll_trimesh(mesh)
    return Mesh.build(positions, uvs, normals, config=config)


def create_sample_mesh(mesh_type: str = "sphere") -> trimesh.Trimesh:
    """
    Create a sample mesh for testing.

    Args:
        mesh_type: Type of mesh to create:
            - "sphere": Icosphere
            - "torus": Torus
            - "cube": Subdivided cube
            - "cylinder": Cylinder
            - "plane": Flat open grid

    Returns:
        Generated trimesh object
    """
    if mesh_type == "sphere":
        mesh = trimesh.creation.icosphere(subdivisions=2, radius=1.0)
    elif mesh_type == "torus":
        mesh = trimesh.creation.torus(major_radius=1.0, minor_radius=0.3,
                                      major_sections=24, minor_sections=12)
    elif mesh_type == "cube":
        mesh = trimesh.creation.box(extents=[1, 1, 1])
        for _ in range(2):
            mesh = mesh.subdivide()
    elif mesh_type == "cylinder":
        mesh = trimesh.creation.cylinder(radius=0.5, height=2.0, sections=24)
    elif mesh_type == "plane":
        mesh = create_grid_mesh()
    else:
        raise ValueError(f"Unknown sample mesh type: {mesh_type}")

    logger.debug(f"Created {mesh_type} mesh: {len(mesh.vertices)} vertices, "
                 f"{len(mesh.faces)} faces")
    return mesh


def create_grid_mesh(rows: int = 10, cols: int = 10, size: float = 2.0) -> trimesh.Trimesh:
    """
    Create a flat open grid in the z = 0 plane, two triangles per cell.

    Args:
        rows: Number of vertex rows
        cols: Number of vertex columns
        size: Edge length of the square grid
    """
    x = np.linspace(-size / 2, size / 2, cols)
    y = np.linspace(-size / 2, size / 2, rows)
    X, Y = np.meshgrid(x, y)
    vertices = np.column_stack([X.flatten(), Y.flatten(), np.zeros(X.size)])

    faces = []
    for i in range(rows - 1):
        for j in range(cols - 1):
            idx = i * cols + j
            faces.append([idx, idx + 1, idx + cols])
            faces.append([idx + 1, idx + cols + 1, idx + cols])

    return trimesh.Trimesh(vertices=vertices, faces=np.array(faces), process=False)

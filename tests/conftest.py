import os
import sys

import numpy as np
import pytest
import trimesh

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from qem_simplify.mesh import Mesh
from qem_simplify.qem import initialize_all_edge_costs, initialize_all_quadrics


def unroll(vertices, faces, uvs=None):
    """Expand indexed geometry into the per-corner arrays Mesh.build takes."""
    vertices = np.asarray(vertices, dtype=float)
    faces = np.asarray(faces, dtype=np.int64)
    positions = vertices[faces].reshape(-1, 3)
    if uvs is None:
        corner_uvs = np.zeros((len(positions), 2))
    else:
        corner_uvs = np.asarray(uvs, dtype=float)[faces].reshape(-1, 2)
    normals = np.tile([0.0, 0.0, 1.0], (len(positions), 1))
    return positions, corner_uvs, normals


def build_initialized(vertices, faces, uvs=None, **kwargs):
    mesh = Mesh.build(*unroll(vertices, faces, uvs), **kwargs)
    initialize_all_quadrics(mesh)
    initialize_all_edge_costs(mesh)
    return mesh


QUAD_VERTICES = [[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0]]
QUAD_FACES = [[0, 1, 2], [0, 2, 3]]
QUAD_UVS = [[0, 0], [1, 0], [1, 1], [0, 1]]

TETRA_VERTICES = [[0, 0, 0], [1, 0, 0], [0, 1, 0], [0, 0, 1]]
TETRA_FACES = [[0, 2, 1], [0, 1, 3], [0, 3, 2], [1, 2, 3]]


@pytest.fixture
def quad_arrays():
    return unroll(QUAD_VERTICES, QUAD_FACES, QUAD_UVS)


@pytest.fixture
def quad_mesh():
    return build_initialized(QUAD_VERTICES, QUAD_FACES, QUAD_UVS)


@pytest.fixture
def tetra_mesh():
    return build_initialized(TETRA_VERTICES, TETRA_FACES)


@pytest.fixture
def sphere_trimesh():
    return trimesh.creation.icosphere(subdivisions=2, radius=1.0)


@pytest.fixture
def sphere_mesh(sphere_trimesh):
    return build_initialized(sphere_trimesh.vertices, sphere_trimesh.faces)


@pytest.fixture
def cube_mesh():
    cube = trimesh.creation.box(extents=[1, 1, 1]).subdivide()
    return build_initialized(cube.vertices, cube.faces)


def assert_topology_consistent(mesh):
    """Live edges/faces reference live, distinct vertices; no duplicate edges."""
    seen = set()
    for edge in mesh.edges:
        if edge.deleted:
            continue
        assert edge.v1 != edge.v2
        assert edge.v1 < edge.v2
        assert not mesh.vertices[edge.v1].deleted
        assert not mesh.vertices[edge.v2].deleted
        assert edge.key not in seen
        seen.add(edge.key)

    for face in mesh.faces:
        if face.deleted:
            continue
        assert len(set(face.indices)) == 3
        for vi in face.indices:
            assert not mesh.vertices[vi].deleted

    assert mesh.deleted_vertex_count == sum(v.deleted for v in mesh.vertices)

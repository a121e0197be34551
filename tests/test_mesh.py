import numpy as np
import pytest

from qem_simplify.config import SimplificationConfig
from qem_simplify.mesh import Face, Mesh, MeshInputError, build_mesh, edge_key

from conftest import QUAD_FACES, QUAD_VERTICES, TETRA_FACES, TETRA_VERTICES, unroll


def test_quad_welds_shared_corners(quad_arrays):
    mesh = Mesh.build(*quad_arrays)

    assert len(mesh.vertices) == 4
    assert len(mesh.faces) == 2
    assert len(mesh.edges) == 5
    assert mesh.original_vertex_count == 4
    assert mesh.deleted_vertex_count == 0


def test_welding_keeps_distinct_points():
    # Nine well separated points, three triangles, nothing to weld
    positions = np.array([[i * 0.1, (i % 3) * 0.1, (i // 3) * 0.1] for i in range(9)])
    uvs = np.zeros((9, 2))
    normals = np.tile([0.0, 0.0, 1.0], (9, 1))

    mesh = Mesh.build(positions, uvs, normals)

    assert len(mesh.vertices) == 9
    assert len(mesh.faces) == 3


def test_welding_merges_near_duplicates_in_one_cell():
    positions = np.array([
        [0.0005, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0],
        [0.00051, 0.0, 0.0], [0.0, 1.0, 0.0], [1.0, 1.0, 1.0],
    ])
    mesh = Mesh.build(positions, np.zeros((6, 2)), np.zeros((6, 3)))

    assert len(mesh.vertices) == 4
    # The first occurrence keeps its position
    assert np.allclose(mesh.vertices[0].position, [0.0005, 0.0, 0.0])


def test_welding_misses_near_duplicates_across_cells():
    positions = np.array([
        [0.00099, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0],
        [0.00101, 0.0, 0.0], [0.0, 1.0, 0.0], [1.0, 1.0, 1.0],
    ])
    mesh = Mesh.build(positions, np.zeros((6, 2)), np.zeros((6, 3)))

    assert len(mesh.vertices) == 5


def test_relative_welding_scales_with_bounding_box():
    positions = np.array([
        [0.0, 0.0, 0.0], [1000.0, 0.0, 0.0], [500.0, 500.0, 0.0],
        [500.05, 500.0, 0.0], [1000.0, 0.0, 0.0], [1000.0, 1000.0, 0.0],
    ])
    uvs = np.zeros((6, 2))
    normals = np.zeros((6, 3))

    absolute = Mesh.build(positions, uvs, normals)
    relative = Mesh.build(positions, uvs, normals,
                          config=SimplificationConfig(relative_welding=True))

    assert len(absolute.vertices) == 5
    assert len(relative.vertices) == 4


def test_degenerate_input_triangle_is_dropped():
    positions = np.array([
        [0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0],
        [0.0, 0.0, 0.0], [0.0, 0.0, 0.0], [1.0, 0.0, 0.0],
    ])
    mesh = Mesh.build(positions, np.zeros((6, 2)), np.zeros((6, 3)))

    assert len(mesh.faces) == 1
    assert len(mesh.edges) == 3


def test_edges_are_unique_and_normalized(sphere_trimesh):
    mesh = Mesh.build(*unroll(sphere_trimesh.vertices, sphere_trimesh.faces))

    keys = [edge.key for edge in mesh.edges]
    assert len(keys) == len(set(keys))
    assert all(edge.v1 < edge.v2 for edge in mesh.edges)
    assert len(mesh.edges) == len(sphere_trimesh.edges_unique)


def test_twice_wound_triangle_has_one_edge_per_pair():
    vertices = [[0, 0, 0], [1, 0, 0], [0, 1, 0]]
    mesh = Mesh.build(*unroll(vertices, [[0, 1, 2], [0, 2, 1]]))

    assert len(mesh.faces) == 2
    assert len(mesh.edges) == 3
    assert mesh.find_edge(1, 0) == mesh.find_edge(0, 1)


def test_face_plane_equation():
    face = Face.from_positions((0, 1, 2),
                               np.array([0.0, 0.0, 2.0]),
                               np.array([1.0, 0.0, 2.0]),
                               np.array([0.0, 1.0, 2.0]))

    assert np.allclose(face.normal, [0, 0, 1])
    assert np.allclose(face.plane, [0, 0, 1, -2])


def test_zero_area_face_gets_zero_plane():
    face = Face.from_positions((0, 1, 2),
                               np.array([0.0, 0.0, 0.0]),
                               np.array([1.0, 0.0, 0.0]),
                               np.array([2.0, 0.0, 0.0]))

    assert np.allclose(face.plane, 0)
    assert not np.any(np.isnan(face.normal))


def test_face_degeneracy_after_replace():
    face = Face(0, 1, 2)
    face.replace_vertex(2, 0)

    assert face.indices == (0, 1, 0)
    assert face.is_degenerate()


def test_edge_key_is_order_independent():
    assert edge_key(5, 2) == edge_key(2, 5) == (2, 5)


def test_build_rejects_short_arrays(quad_arrays):
    positions, uvs, normals = quad_arrays

    with pytest.raises(MeshInputError):
        Mesh.build(positions, uvs[:3], normals)
    with pytest.raises(MeshInputError):
        Mesh.build(positions, uvs, normals, vertex_count=len(positions) + 3)


def test_build_rejects_bad_shapes(quad_arrays):
    positions, uvs, normals = quad_arrays

    with pytest.raises(MeshInputError):
        Mesh.build(positions[:, :2], uvs, normals)
    with pytest.raises(ValueError):
        Mesh.build(positions, normals, normals)


def test_vertex_count_limits_consumed_input(quad_arrays):
    mesh = Mesh.build(*quad_arrays, vertex_count=3)

    assert len(mesh.faces) == 1
    assert len(mesh.vertices) == 3


def test_trailing_partial_triangle_is_ignored(quad_arrays):
    positions, uvs, normals = quad_arrays
    positions = np.vstack([positions, [[5.0, 5.0, 5.0]]])
    uvs = np.vstack([uvs, [[0.0, 0.0]]])
    normals = np.vstack([normals, [[0.0, 0.0, 1.0]]])

    mesh = Mesh.build(positions, uvs, normals)

    assert len(mesh.faces) == 2
    # The stray vertex is still welded in, it just belongs to no face
    assert len(mesh.vertices) == 5


def test_empty_input_builds_empty_mesh():
    mesh = build_mesh([], [], [])

    assert mesh.live_vertex_count == 0
    assert mesh.live_face_count == 0
    assert mesh.live_edge_count == 0


def test_vertices_carry_attributes(quad_arrays):
    mesh = Mesh.build(*quad_arrays)

    corner = mesh.vertices[2]
    assert np.allclose(corner.position, [1, 1, 0])
    assert np.allclose(corner.tex_coord, [1, 1])
    assert np.allclose(corner.normal, [0, 0, 1])
    assert np.allclose(corner.color, [1, 1, 1, 1])
    assert np.allclose(corner.quadric, 0)


def test_custom_default_color(quad_arrays):
    config = SimplificationConfig(default_color=(0.5, 0.25, 0.0, 1.0))
    mesh = Mesh.build(*quad_arrays, config=config)

    assert all(np.allclose(v.color, [0.5, 0.25, 0.0, 1.0]) for v in mesh.vertices)


def test_incidence_queries(quad_arrays):
    mesh = Mesh.build(*quad_arrays)

    # Vertex 0 and 2 lie on the diagonal and touch both faces
    assert mesh.live_faces_at(0) == [0, 1]
    assert mesh.live_faces_at(1) == [0]
    assert len(mesh.live_edges_at(0)) == 3
    assert len(mesh.live_edges_at(1)) == 2


def test_boundary_flags():
    quad = Mesh.build(*unroll(QUAD_VERTICES, QUAD_FACES))
    tetra = Mesh.build(*unroll(TETRA_VERTICES, TETRA_FACES))

    assert quad.compute_boundary_flags() == 4
    assert not quad.edges[quad.find_edge(0, 2)].boundary
    assert tetra.compute_boundary_flags() == 0


def test_to_arrays_and_trimesh(quad_arrays):
    mesh = Mesh.build(*quad_arrays)

    vertices, faces, uvs, colors = mesh.to_arrays()
    assert vertices.shape == (4, 3)
    assert faces.shape == (2, 3)
    assert uvs.shape == (4, 2)
    assert colors.shape == (4, 4)

    tm = mesh.to_trimesh()
    assert len(tm.vertices) == 4
    assert len(tm.faces) == 2
    assert np.isclose(tm.area, 1.0)


def test_unrolled_arrays_rebuild_same_mesh(sphere_trimesh):
    mesh = Mesh.build(*unroll(sphere_trimesh.vertices, sphere_trimesh.faces))

    positions, uvs, normals, colors = mesh.unrolled_arrays()
    assert positions.shape == (3 * len(mesh.faces), 3)
    assert colors.shape == (3 * len(mesh.faces), 4)

    rebuilt = Mesh.build(positions, uvs, normals)
    assert len(rebuilt.vertices) == len(mesh.vertices)
    assert len(rebuilt.faces) == len(mesh.faces)
    assert len(rebuilt.edges) == len(mesh.edges)

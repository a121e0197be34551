"""
Indexed Mesh Store
==================

Vertex, edge and face records plus the Mesh container that owns them.

Deletion is logical: records are flagged, never removed, so every integer
index handed out during construction stays valid for the whole run.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import trimesh

from .config import SimplificationConfig

logger = logging.getLogger(__name__)


class MeshInputError(ValueError):
    """Raised when the arrays handed to Mesh.build are malformed."""


def edge_key(a: int, b: int) -> Tuple[int, int]:
    """Normalized unordered vertex pair, smaller index first."""
    return (a, b) if a < b else (b, a)


@dataclass
class Vertex:
    position: np.ndarray
    normal: np.ndarray
    tex_coord: np.ndarray
    color: np.ndarray
    quadric: np.ndarray = field(default_factory=lambda: np.zeros((4, 4)))
    deleted: bool = False


@dataclass
class Edge:
    """
    Collapse candidate between two vertices.

    `dirty` marks `cost` and `optimal_position` as possibly stale; the
    scheduler recomputes them the next time the edge is popped.
    """
    v1: int
    v2: int
    cost: float = 0.0
    optimal_position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    boundary: bool = False
    dirty: bool = False
    deleted: bool = False

    @property
    def key(self) -> Tuple[int, int]:
        return edge_key(self.v1, self.v2)


@dataclass
class Face:
    v1: int
    v2: int
    v3: int
    normal: np.ndarray = field(default_factory=lambda: np.zeros(3))
    plane: np.ndarray = field(default_factory=lambda: np.zeros(4))
    deleted: bool = False

    @classmethod
    def from_positions(cls, indices: Sequence[int], p1: np.ndarray,
                       p2: np.ndarray, p3: np.ndarray) -> "Face":
        """
        Create a face and derive its unit normal and plane [a, b, c, d]
        with ax + by + cz + d = 0.

        Zero-area triangles get a zero normal and a zero plane so they add
        nothing to any quadric.
        """
        normal = np.cross(p2 - p1, p3 - p1)
        length = np.linalg.norm(normal)
        if length < 1e-12:
            return cls(*indices)

        normal = normal / length
        d = -np.dot(normal, p1)
        return cls(*indices, normal=normal,
                   plane=np.array([normal[0], normal[1], normal[2], d]))

    @property
    def indices(self) -> Tuple[int, int, int]:
        return (self.v1, self.v2, self.v3)

    def replace_vertex(self, old: int, new: int):
        if self.v1 == old:
            self.v1 = new
        if self.v2 == old:
            self.v2 = new
        if self.v3 == old:
            self.v3 = new

    def is_degenerate(self) -> bool:
        return self.v1 == self.v2 or self.v2 == self.v3 or self.v3 == self.v1


class Mesh:
    """
    Growth-only arrays of vertices, edges and faces.

    Besides the three arrays the mesh keeps an unordered-pair lookup for
    edges and per-vertex incidence sets of live edges and live faces, so
    remapping after a collapse only visits the records that can reference
    the removed vertex.
    """

    def __init__(self, config: Optional[SimplificationConfig] = None):
        self.config = config if config is not None else SimplificationConfig()
        self.vertices: List[Vertex] = []
        self.edges: List[Edge] = []
        self.faces: List[Face] = []
        self.deleted_vertex_count = 0
        self.original_vertex_count = 0

        self._edge_lookup: Dict[Tuple[int, int], int] = {}
        self._vertex_edges: List[set] = []
        self._vertex_faces: List[set] = []

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def build(cls, positions, uvs, normals,
              vertex_count: Optional[int] = None,
              config: Optional[SimplificationConfig] = None) -> "Mesh":
        """
        Build a mesh from triangle-unrolled arrays.

        Input vertex i, i+1, i+2 form triangle i/3. Coincident input
        vertices are welded through a spatial hash, triangles that collapse
        onto a repeated index are dropped and every shared edge is stored once.

        Args:
            positions: (N, 3) vertex positions
            uvs: (N, 2) texture coordinates
            normals: (N, 3) vertex normals
            vertex_count: Number of input vertices to consume (default N)
            config: Welding tolerances and vertex defaults

        Returns:
            Mesh with zero quadrics and costs

        Raises:
            MeshInputError: If array shapes or lengths do not match
        """
        config = (config if config is not None else SimplificationConfig()).validate()
        positions, uvs, normals, n = _check_inputs(positions, uvs, normals, vertex_count)

        mesh = cls(config)
        logger.info(f"Building mesh with {n} input vertices...")

        mapping = mesh._weld(positions[:n], uvs[:n], normals[:n])

        dropped = 0
        for i in range(0, n - 2, 3):
            a, b, c = int(mapping[i]), int(mapping[i + 1]), int(mapping[i + 2])
            if a == b or b == c or c == a:
                dropped += 1
                continue
            mesh._add_face(a, b, c)
        if dropped:
            logger.debug(f"Dropped {dropped} degenerate input triangles")

        for face in mesh.faces:
            a, b, c = face.indices
            for u, v in ((a, b), (b, c), (c, a)):
                mesh._add_edge(u, v)

        mesh.original_vertex_count = len(mesh.vertices)
        logger.info(f"Mesh: {len(mesh.vertices)} vertices, {len(mesh.faces)} faces, "
                    f"{len(mesh.edges)} edges")
        return mesh

    def _weld(self, positions: np.ndarray, uvs: np.ndarray,
              normals: np.ndarray) -> np.ndarray:
        """Map every input vertex to a unique output vertex, return the map."""
        n = len(positions)
        if n:
            diagonal = float(np.linalg.norm(np.ptp(positions, axis=0)))
        else:
            diagonal = 0.0
        grid_size, epsilon = self.config.welding_tolerances(diagonal)

        cells = np.floor(positions / grid_size).astype(np.int64)
        spatial_hash: Dict[Tuple[int, int, int], List[int]] = {}
        mapping = np.empty(n, dtype=np.int64)

        for i in range(n):
            key = tuple(cells[i].tolist())
            pos = positions[i]

            match = -1
            for existing in spatial_hash.get(key, ()):
                if np.linalg.norm(pos - self.vertices[existing].position) < epsilon:
                    match = existing
                    break

            if match < 0:
                match = self._add_vertex(pos, normals[i], uvs[i])
                spatial_hash.setdefault(key, []).append(match)
            mapping[i] = match

        logger.info(f"Vertex welding complete: {n} -> {len(self.vertices)} unique vertices")
        return mapping

    def _add_vertex(self, position, normal, tex_coord) -> int:
        self.vertices.append(Vertex(
            position=np.array(position, dtype=float),
            normal=np.array(normal, dtype=float),
            tex_coord=np.array(tex_coord, dtype=float),
            color=np.array(self.config.default_color, dtype=float),
        ))
        self._vertex_edges.append(set())
        self._vertex_faces.append(set())
        return len(self.vertices) - 1

    def _add_face(self, a: int, b: int, c: int) -> int:
        face = Face.from_positions(
            (a, b, c),
            self.vertices[a].position,
            self.vertices[b].position,
            self.vertices[c].position,
        )
        self.faces.append(face)
        fi = len(self.faces) - 1
        for vi in face.indices:
            self._vertex_faces[vi].add(fi)
        return fi

    def _add_edge(self, a: int, b: int) -> Optional[int]:
        """Insert the unordered pair (a, b) unless it already exists."""
        key = edge_key(a, b)
        if key in self._edge_lookup:
            return None
        self.edges.append(Edge(*key))
        ei = len(self.edges) - 1
        self._edge_lookup[key] = ei
        self._vertex_edges[a].add(ei)
        self._vertex_edges[b].add(ei)
        return ei

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_edge(self, a: int, b: int) -> Optional[int]:
        """Index of the live edge joining a and b in either order, or None."""
        return self._edge_lookup.get(edge_key(a, b))

    def live_edges_at(self, vertex_index: int) -> List[int]:
        return sorted(self._vertex_edges[vertex_index])

    def live_faces_at(self, vertex_index: int) -> List[int]:
        return sorted(self._vertex_faces[vertex_index])

    def iter_live_faces(self) -> Iterator[Tuple[int, Face]]:
        for fi, face in enumerate(self.faces):
            if not face.deleted:
                yield fi, face

    @property
    def live_vertex_count(self) -> int:
        return len(self.vertices) - self.deleted_vertex_count

    @property
    def live_edge_count(self) -> int:
        return sum(1 for e in self.edges if not e.deleted)

    @property
    def live_face_count(self) -> int:
        return sum(1 for f in self.faces if not f.deleted)

    def compute_boundary_flags(self) -> int:
        """Flag live edges with exactly one live incident face, return the count."""
        face_count: Dict[Tuple[int, int], int] = {}
        for _, face in self.iter_live_faces():
            a, b, c = face.indices
            for pair in ((a, b), (b, c), (c, a)):
                key = edge_key(*pair)
                face_count[key] = face_count.get(key, 0) + 1

        boundary = 0
        for edge in self.edges:
            if edge.deleted:
                continue
            edge.boundary = face_count.get(edge.key, 0) == 1
            boundary += edge.boundary
        return boundary

    # ------------------------------------------------------------------
    # Mutation used by edge collapse
    # ------------------------------------------------------------------

    def delete_vertex(self, vertex_index: int):
        vertex = self.vertices[vertex_index]
        if not vertex.deleted:
            vertex.deleted = True
            self.deleted_vertex_count += 1

    def delete_edge(self, edge_index: int):
        edge = self.edges[edge_index]
        if edge.deleted:
            return
        edge.deleted = True
        if self._edge_lookup.get(edge.key) == edge_index:
            del self._edge_lookup[edge.key]
        self._vertex_edges[edge.v1].discard(edge_index)
        self._vertex_edges[edge.v2].discard(edge_index)

    def remap_edges(self, removed: int, kept: int) -> List[int]:
        """
        Point every live edge at `removed` to `kept`.

        Edges that would join `kept` to itself, or duplicate a live edge for
        the same pair, are deleted.

        Returns:
            Sorted indices of the live edges now touching `kept`
        """
        for ei in sorted(self._vertex_edges[removed]):
            edge = self.edges[ei]
            other = edge.v2 if edge.v1 == removed else edge.v1
            del self._edge_lookup[edge.key]

            key = edge_key(other, kept)
            if other == kept or key in self._edge_lookup:
                edge.deleted = True
                self._vertex_edges[other].discard(ei)
                continue

            edge.v1, edge.v2 = key
            self._edge_lookup[key] = ei
            self._vertex_edges[kept].add(ei)

        self._vertex_edges[removed].clear()
        return self.live_edges_at(kept)

    def remap_faces(self, removed: int, kept: int) -> int:
        """
        Point every live face at `removed` to `kept`, deleting faces that
        become degenerate.

        Returns:
            Number of faces deleted
        """
        deleted = 0
        for fi in sorted(self._vertex_faces[removed]):
            face = self.faces[fi]
            face.replace_vertex(removed, kept)
            if face.is_degenerate():
                face.deleted = True
                deleted += 1
                for vi in set(face.indices):
                    if vi != removed:
                        self._vertex_faces[vi].discard(fi)
            else:
                self._vertex_faces[kept].add(fi)

        self._vertex_faces[removed].clear()
        return deleted

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def to_arrays(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """
        Compact live vertices and faces.

        Returns:
            (vertices (V, 3), faces (F, 3), uvs (V, 2), colors (V, 4))
        """
        remap = {}
        live = []
        for i, vertex in enumerate(self.vertices):
            if not vertex.deleted:
                remap[i] = len(live)
                live.append(vertex)

        faces = [[remap[vi] for vi in face.indices] for _, face in self.iter_live_faces()]

        vertices = np.array([v.position for v in live]).reshape(-1, 3)
        uvs = np.array([v.tex_coord for v in live]).reshape(-1, 2)
        colors = np.array([v.color for v in live]).reshape(-1, 4)
        faces_array = np.array(faces, dtype=np.int64).reshape(-1, 3)
        return vertices, faces_array, uvs, colors

    def unrolled_arrays(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """
        Triangle-unrolled positions, uvs, normals and colors of the live faces,
        in the same layout Mesh.build consumes.
        """
        corners = [self.vertices[vi] for _, face in self.iter_live_faces()
                   for vi in face.indices]
        positions = np.array([v.position for v in corners]).reshape(-1, 3)
        uvs = np.array([v.tex_coord for v in corners]).reshape(-1, 2)
        normals = np.array([v.normal for v in corners]).reshape(-1, 3)
        colors = np.array([v.color for v in corners]).reshape(-1, 4)
        return positions, uvs, normals, colors

    def to_trimesh(self) -> trimesh.Trimesh:
        """Build a trimesh object from the live part of the mesh."""
        vertices, faces, _, colors = self.to_arrays()
        if len(vertices) == 0:
            return trimesh.Trimesh(vertices=vertices, faces=faces, process=False)
        vertex_colors = np.clip(np.round(colors * 255), 0, 255).astype(np.uint8)
        return trimesh.Trimesh(vertices=vertices, faces=faces,
                               vertex_colors=vertex_colors, process=False)

    def __repr__(self) -> str:
        return (f"Mesh(vertices={self.live_vertex_count}/{len(self.vertices)}, "
                f"edges={self.live_edge_count}/{len(self.edges)}, "
                f"faces={self.live_face_count}/{len(self.faces)})")


def _check_inputs(positions, uvs, normals, vertex_count):
    positions = np.asarray(positions, dtype=float)
    uvs = np.asarray(uvs, dtype=float)
    normals = np.asarray(normals, dtype=float)

    # empty inputs arrive as flat arrays
    if positions.size == 0:
        positions = positions.reshape(0, 3)
    if uvs.size == 0:
        uvs = uvs.reshape(0, 2)
    if normals.size == 0:
        normals = normals.reshape(0, 3)

    if positions.ndim != 2 or positions.shape[1] != 3:
        raise MeshInputError(f"positions must have shape (N, 3), got {positions.shape}")
    if uvs.ndim != 2 or uvs.shape[1] != 2:
        raise MeshInputError(f"uvs must have shape (N, 2), got {uvs.shape}")
    if normals.ndim != 2 or normals.shape[1] != 3:
        raise MeshInputError(f"normals must have shape (N, 3), got {normals.shape}")

    n = len(positions) if vertex_count is None else int(vertex_count)
    if n < 0:
        raise MeshInputError(f"vertex_count must be non-negative, got {n}")
    for name, array in (("positions", positions), ("uvs", uvs), ("normals", normals)):
        if len(array) < n:
            raise MeshInputError(f"{name} has {len(array)} entries, expected at least {n}")

    return positions, uvs, normals, n


def build_mesh(positions, uvs, normals, vertex_count: Optional[int] = None,
               config: Optional[SimplificationConfig] = None) -> Mesh:
    """Functional alias for Mesh.build."""
    return Mesh.build(positions, uvs, normals, vertex_count=vertex_count, config=config)

"""3D tube meshes from finished strokes.

A stroke's points are synthesized into a smooth 2D curve, mapped into a
fixed-size model volume with a small per-point depth wave, interpolated by a
Catmull-Rom spline and swept with a circular cross-section:

    builder = MeshBuilder(config)
    mesh = builder.build(stroke, stroke_index=0, width=640, height=480)
    if mesh is not None:
        renderer.add(mesh.to_dict())

Meshes are memoized by ``MeshKey(stroke_index, point_count)``. Rebuilding
the scene every frame with ``build_all()`` only computes strokes that are
new or changed.
"""

from __future__ import annotations

import colorsys
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from contextlib import nullcontext
from dataclasses import dataclass
from typing import NamedTuple, Optional, Sequence

import numpy as np

from airclay.config import DrawingConfig
from airclay.curves import CurveSynthesizer
from airclay.profiler import PipelineProfiler
from airclay.strokes import Stroke

logger = logging.getLogger("airclay.mesh")

_EPS = 1e-8


class CatmullRomCurve:
    """Interpolating cubic spline through 3D control points.

    Supports the uniform ``catmullrom`` form with a tension parameter and the
    non-uniform ``centripetal`` and ``chordal`` forms. The open ends are
    extended by reflecting the neighbouring control point, so the curve
    starts at the first control point and ends at the last.
    """

    def __init__(
        self,
        points: np.ndarray,
        curve_type: str = "catmullrom",
        tension: float = 0.5,
        arc_length_divisions: int = 200,
    ):
        pts = np.asarray(points, dtype=np.float64)
        if pts.ndim != 2 or len(pts) < 2:
            raise ValueError(f"CatmullRomCurve needs at least 2 points, got shape {pts.shape}")

        self.points = pts
        self.curve_type = curve_type
        self.tension = tension
        self.arc_length_divisions = arc_length_divisions

        head = 2.0 * pts[0] - pts[1]
        tail = 2.0 * pts[-1] - pts[-2]
        self._padded = np.vstack([head, pts, tail])
        self._arc_lengths: Optional[np.ndarray] = None

    def get_points(self, t) -> np.ndarray:
        """Evaluate the curve at parameters ``t`` in [0, 1]. Returns (M, D)."""
        t = np.clip(np.atleast_1d(np.asarray(t, dtype=np.float64)), 0.0, 1.0)
        n = len(self.points)

        p = (n - 1) * t
        idx = np.floor(p).astype(int)
        weight = p - idx
        at_end = idx >= n - 1
        idx[at_end] = n - 2
        weight[at_end] = 1.0

        p0 = self._padded[idx]
        p1 = self._padded[idx + 1]
        p2 = self._padded[idx + 2]
        p3 = self._padded[idx + 3]

        if self.curve_type == "catmullrom":
            t1 = self.tension * (p2 - p0)
            t2 = self.tension * (p3 - p1)
        else:
            power = 0.25 if self.curve_type == "centripetal" else 0.5
            dt0 = np.sum((p1 - p0) ** 2, axis=1) ** power
            dt1 = np.sum((p2 - p1) ** 2, axis=1) ** power
            dt2 = np.sum((p3 - p2) ** 2, axis=1) ** power

            # Coincident control points
            dt1 = np.where(dt1 < 1e-4, 1.0, dt1)
            dt0 = np.where(dt0 < 1e-4, dt1, dt0)
            dt2 = np.where(dt2 < 1e-4, dt1, dt2)
            dt0, dt1, dt2 = dt0[:, None], dt1[:, None], dt2[:, None]

            t1 = ((p1 - p0) / dt0 - (p2 - p0) / (dt0 + dt1) + (p2 - p1) / dt1) * dt1
            t2 = ((p2 - p1) / dt1 - (p3 - p1) / (dt1 + dt2) + (p3 - p2) / dt2) * dt1

        # Cubic Hermite between p1 and p2
        c0 = p1
        c1 = t1
        c2 = -3.0 * p1 + 3.0 * p2 - 2.0 * t1 - t2
        c3 = 2.0 * p1 - 2.0 * p2 + t1 + t2
        w = weight[:, None]
        return c0 + w * (c1 + w * (c2 + w * c3))

    def arc_lengths(self) -> np.ndarray:
        """Cumulative chord lengths over ``arc_length_divisions`` samples."""
        if self._arc_lengths is None:
            samples = self.get_points(np.linspace(0.0, 1.0, self.arc_length_divisions + 1))
            seg = np.linalg.norm(np.diff(samples, axis=0), axis=1)
            self._arc_lengths = np.concatenate([[0.0], np.cumsum(seg)])
        return self._arc_lengths

    @property
    def length(self) -> float:
        return float(self.arc_lengths()[-1])

    def u_to_t(self, u) -> np.ndarray:
        """Map arc-length fractions ``u`` to curve parameters ``t``."""
        u = np.clip(np.atleast_1d(np.asarray(u, dtype=np.float64)), 0.0, 1.0)
        lengths = self.arc_lengths()
        total = lengths[-1]
        if total < _EPS:
            return u
        params = np.linspace(0.0, 1.0, len(lengths))
        return np.interp(u * total, lengths, params)

    def get_points_at(self, u) -> np.ndarray:
        """Evaluate at evenly spaced arc-length fractions."""
        return self.get_points(self.u_to_t(u))

    def get_tangents_at(self, u, delta: float = 1e-4) -> np.ndarray:
        """Unit tangents by central difference, at arc-length fractions."""
        t = self.u_to_t(u)
        ahead = self.get_points(np.clip(t + delta, 0.0, 1.0))
        behind = self.get_points(np.clip(t - delta, 0.0, 1.0))
        d = ahead - behind
        norms = np.linalg.norm(d, axis=1, keepdims=True)
        return d / np.maximum(norms, _EPS)


def _rotate(v: np.ndarray, axis: np.ndarray, theta: float) -> np.ndarray:
    """Rodrigues rotation of ``v`` about unit ``axis``."""
    cos_t = math.cos(theta)
    sin_t = math.sin(theta)
    return v * cos_t + np.cross(axis, v) * sin_t + axis * np.dot(axis, v) * (1.0 - cos_t)


def compute_frenet_frames(curve: CatmullRomCurve, segments: int):
    """Parallel-transported frames along the curve.

    The first normal is seeded perpendicular to the tangent using the world
    axis the tangent is least aligned with, then carried along by rotating it
    through the angle between consecutive tangents. This avoids the sudden
    flips of the textbook Frenet frame at inflection points.

    Returns:
        (tangents, normals, binormals), each shape (segments + 1, 3).
    """
    u = np.linspace(0.0, 1.0, segments + 1)
    tangents = curve.get_tangents_at(u)
    normals = np.zeros_like(tangents)
    binormals = np.zeros_like(tangents)

    t0 = tangents[0]
    mags = np.abs(t0)
    # Ties go to the later axis
    axis_idx = 2 - int(np.argmin(mags[::-1]))
    seed = np.zeros(3)
    seed[axis_idx] = 1.0

    vec = np.cross(t0, seed)
    vec /= max(np.linalg.norm(vec), _EPS)
    normals[0] = np.cross(t0, vec)
    binormals[0] = np.cross(t0, normals[0])

    for i in range(1, segments + 1):
        normal = normals[i - 1]
        vec = np.cross(tangents[i - 1], tangents[i])
        norm = np.linalg.norm(vec)
        if norm > _EPS:
            vec /= norm
            theta = math.acos(float(np.clip(np.dot(tangents[i - 1], tangents[i]), -1.0, 1.0)))
            normal = _rotate(normal, vec, theta)
        normals[i] = normal
        binormals[i] = np.cross(tangents[i], normal)

    return tangents, normals, binormals


def sweep_tube(
    curve: CatmullRomCurve,
    tubular_segments: int,
    radius: float,
    radial_segments: int,
):
    """Sweep a circle along the curve into an open tube surface.

    Returns:
        (vertices, normals, uvs, faces, centers). Vertices and normals have
        shape ((tubular + 1) * (radial + 1), 3); each ring repeats its first
        vertex so UVs wrap cleanly. Faces are triangles, shape
        (2 * tubular * radial, 3).
    """
    u = np.linspace(0.0, 1.0, tubular_segments + 1)
    centers = curve.get_points_at(u)
    _, frame_n, frame_b = compute_frenet_frames(curve, tubular_segments)

    v = np.arange(radial_segments + 1) / radial_segments * 2.0 * math.pi
    sin_v = np.sin(v)
    cos_v = -np.cos(v)

    ring = cos_v[None, :, None] * frame_n[:, None, :] + sin_v[None, :, None] * frame_b[:, None, :]
    ring /= np.maximum(np.linalg.norm(ring, axis=2, keepdims=True), _EPS)
    vertices = centers[:, None, :] + radius * ring

    uu, vv = np.meshgrid(
        np.arange(tubular_segments + 1) / tubular_segments,
        np.arange(radial_segments + 1) / radial_segments,
        indexing="ij",
    )
    uvs = np.stack([uu, vv], axis=-1)

    stride = radial_segments + 1
    j, i = np.meshgrid(
        np.arange(1, tubular_segments + 1),
        np.arange(1, radial_segments + 1),
        indexing="ij",
    )
    a = stride * (j - 1) + (i - 1)
    b = stride * j + (i - 1)
    c = stride * j + i
    d = stride * (j - 1) + i
    faces = np.stack(
        [np.stack([a, b, d], axis=-1), np.stack([b, c, d], axis=-1)], axis=2
    ).reshape(-1, 3)

    return (
        vertices.reshape(-1, 3),
        ring.reshape(-1, 3),
        uvs.reshape(-1, 2),
        faces.astype(np.int32),
        centers,
    )


def hsl_to_hex(hue: float, saturation: float, lightness: float) -> str:
    """CSS-style hsl() to a hex color string."""
    r, g, b = colorsys.hls_to_rgb((hue % 360) / 360.0, lightness, saturation)
    return "#{:02x}{:02x}{:02x}".format(round(r * 255), round(g * 255), round(b * 255))


def float_motion(stroke_index: int, elapsed: float) -> tuple[float, float]:
    """Idle animation offsets for a displayed stroke.

    Returns:
        (bob_y, roll_z): vertical offset and rotation about z in radians.
        Applied by the renderer on top of the static mesh.
    """
    bob = math.sin(elapsed * 0.3 + stroke_index * 0.7) * 0.05
    roll = math.sin(elapsed * 0.2 + stroke_index) * 0.02
    return bob, roll


class MeshKey(NamedTuple):
    """Cache key: a stroke's position in the collection and its length."""
    stroke_index: int
    point_count: int


@dataclass
class TubeMaterial:
    hue: int
    color: str
    emissive: str
    emissive_intensity: float
    metalness: float
    roughness: float

    def to_dict(self) -> dict:
        return {
            "hue": self.hue,
            "color": self.color,
            "emissive": self.emissive,
            "emissive_intensity": self.emissive_intensity,
            "metalness": self.metalness,
            "roughness": self.roughness,
        }


@dataclass
class TubeMesh:
    """Renderable tube surface for one stroke."""
    key: MeshKey
    vertices: np.ndarray  # (V, 3)
    normals: np.ndarray  # (V, 3)
    uvs: np.ndarray  # (V, 2)
    faces: np.ndarray  # (F, 3) int32
    centerline: np.ndarray  # (tubular + 1, 3) sampled curve
    control_points: np.ndarray  # (M, 3) mapped synthesized points
    radius: float
    radial_segments: int
    tubular_segments: int
    material: TubeMaterial
    position: tuple[float, float, float] = (0.0, 0.0, 0.0)

    @property
    def stroke_index(self) -> int:
        return self.key.stroke_index

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    @property
    def face_count(self) -> int:
        return len(self.faces)

    @property
    def color(self) -> str:
        return self.material.color

    def to_dict(self, precision: int = 4) -> dict:
        return {
            "stroke_index": self.key.stroke_index,
            "point_count": self.key.point_count,
            "position": list(self.position),
            "radius": self.radius,
            "radial_segments": self.radial_segments,
            "tubular_segments": self.tubular_segments,
            "vertices": np.round(self.vertices, precision).tolist(),
            "normals": np.round(self.normals, precision).tolist(),
            "uvs": np.round(self.uvs, precision).tolist(),
            "faces": self.faces.tolist(),
            "material": self.material.to_dict(),
        }


_MISSING = object()


class MeshCache:
    """Memo table from ``MeshKey`` to a built mesh.

    A stroke that produced no geometry is cached as None so it is not
    rebuilt either. Entries are only valid for one viewport size.
    """

    def __init__(self):
        self._entries: dict[MeshKey, Optional[TubeMesh]] = {}
        self._viewport: Optional[tuple[float, float]] = None
        self.hits = 0
        self.misses = 0

    def set_viewport(self, width: float, height: float) -> bool:
        """Record the viewport. Returns True if it changed and the cache was dropped."""
        viewport = (float(width), float(height))
        if viewport == self._viewport:
            return False
        if self._entries:
            logger.debug("Viewport changed to %sx%s, dropping %d cached meshes", width, height, len(self._entries))
        self._entries.clear()
        self._viewport = viewport
        return True

    def lookup(self, key: MeshKey, default=_MISSING):
        if key in self._entries:
            self.hits += 1
            return self._entries[key]
        self.misses += 1
        return default

    def store(self, key: MeshKey, mesh: Optional[TubeMesh]):
        self._entries[key] = mesh

    def retain(self, keys):
        """Drop every entry whose key is not in ``keys``."""
        keep = set(keys)
        for key in [k for k in self._entries if k not in keep]:
            del self._entries[key]

    def invalidate(self):
        self._entries.clear()

    def __contains__(self, key: MeshKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class MeshBuilder:
    """Turns finished strokes into tube meshes.

    With a profiler attached, curve synthesis is timed as the ``synthesis``
    stage of every build.
    """

    def __init__(
        self,
        config: Optional[DrawingConfig] = None,
        profiler: Optional[PipelineProfiler] = None,
    ):
        self.config = config or DrawingConfig()
        self.profiler = profiler
        self.synthesizer = CurveSynthesizer(
            max_points=self.config.max_curve_points,
            iterations=self.config.chaikin_iterations,
        )
        self.cache = MeshCache()

    def _stage(self, name: str):
        if self.profiler is None:
            return nullcontext()
        return self.profiler.stage(name)

    def depth_index(self, stroke_index: int) -> int:
        """Depth layer of a stroke; wraps after ``depth_cycle`` strokes."""
        cycle = self.config.depth_cycle
        return stroke_index % cycle if cycle else stroke_index

    def material_for(self, stroke_index: int) -> TubeMaterial:
        cfg = self.config
        hue = cfg.hue_palette[stroke_index % len(cfg.hue_palette)]
        return TubeMaterial(
            hue=hue,
            color=hsl_to_hex(hue, cfg.saturation, cfg.lightness),
            emissive=hsl_to_hex(hue, cfg.emissive_saturation, cfg.emissive_lightness),
            emissive_intensity=cfg.emissive_intensity,
            metalness=cfg.metalness,
            roughness=cfg.roughness,
        )

    def map_to_model(
        self, points: np.ndarray, stroke_index: int, width: float, height: float
    ) -> np.ndarray:
        """Map canvas pixels into the model volume, adding the depth wave.

        Image y grows downwards and model y grows upwards, hence the flip.
        """
        cfg = self.config
        pts = np.asarray(points, dtype=np.float64)
        i = np.arange(len(pts))

        x = (pts[:, 0] / width - 0.5) * cfg.volume_width
        y = -(pts[:, 1] / height - 0.5) * cfg.volume_height
        z = np.sin(i * cfg.z_wave_frequency) * cfg.z_wave_amplitude + self.depth_index(stroke_index) * cfg.depth_step
        return np.column_stack([x, y, z])

    def build(
        self,
        stroke: Stroke | np.ndarray | Sequence,
        stroke_index: int,
        width: float,
        height: float,
    ) -> Optional[TubeMesh]:
        """Build the tube for one stroke, bypassing the cache.

        Args:
            stroke: The stroke's raw canvas-space points.
            stroke_index: Position in the stroke collection; drives depth
                and color.
            width: Canvas width in pixels.
            height: Canvas height in pixels.

        Returns:
            The mesh, or None when the stroke is too short to make a tube.
        """
        if width <= 0 or height <= 0:
            raise ValueError(f"Viewport size must be positive, got {width}x{height}")

        raw = stroke.as_array() if isinstance(stroke, Stroke) else np.asarray(stroke, dtype=np.float64).reshape(-1, 2)
        key = MeshKey(stroke_index, len(raw))
        if len(raw) < 3:
            logger.debug("Stroke %d has %d points, no mesh", stroke_index, len(raw))
            return None

        with self._stage("synthesis"):
            smoothed = self.synthesizer.synthesize(raw)
        if len(smoothed) < 2:
            return None

        cfg = self.config
        control = self.map_to_model(smoothed, stroke_index, width, height)
        curve = CatmullRomCurve(
            control,
            curve_type=cfg.curve_type,
            tension=cfg.curve_tension,
            arc_length_divisions=cfg.arc_length_divisions,
        )
        tubular = min(len(control) * cfg.tubular_segments_per_point, cfg.max_tubular_segments)
        vertices, normals, uvs, faces, centers = sweep_tube(
            curve, tubular, cfg.tube_radius, cfg.radial_segments
        )

        return TubeMesh(
            key=key,
            vertices=vertices,
            normals=normals,
            uvs=uvs,
            faces=faces,
            centerline=centers,
            control_points=control,
            radius=cfg.tube_radius,
            radial_segments=cfg.radial_segments,
            tubular_segments=tubular,
            material=self.material_for(stroke_index),
            position=(0.0, 0.0, self.depth_index(stroke_index) * cfg.mesh_depth_offset),
        )

    def mesh_for(self, stroke: Stroke, stroke_index: int, width: float, height: float) -> Optional[TubeMesh]:
        """Cached ``build``: reuses the mesh while (index, point count) is unchanged."""
        self.cache.set_viewport(width, height)
        key = MeshKey(stroke_index, len(stroke))
        mesh = self.cache.lookup(key)
        if mesh is _MISSING:
            mesh = self.build(stroke, stroke_index, width, height)
            self.cache.store(key, mesh)
        return mesh

    def build_all(
        self, strokes: Sequence[Stroke], width: float, height: float
    ) -> list[Optional[TubeMesh]]:
        """Meshes for a whole stroke collection, one entry per stroke.

        Cached meshes are reused. Missing ones are built in a thread pool when
        ``mesh_workers > 1``; strokes are independent so this is safe.
        """
        self.cache.set_viewport(width, height)
        keys = [MeshKey(i, len(s)) for i, s in enumerate(strokes)]
        self.cache.retain(keys)

        results: list[Optional[TubeMesh]] = [None] * len(strokes)
        pending: list[int] = []
        for i, key in enumerate(keys):
            mesh = self.cache.lookup(key)
            if mesh is _MISSING:
                pending.append(i)
            else:
                results[i] = mesh

        if not pending:
            return results

        workers = min(self.config.mesh_workers, len(pending))
        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                built = list(pool.map(lambda i: self.build(strokes[i], i, width, height), pending))
        else:
            built = [self.build(strokes[i], i, width, height) for i in pending]

        for i, mesh in zip(pending, built):
            self.cache.store(keys[i], mesh)
            results[i] = mesh

        logger.debug("Built %d meshes, %d reused", len(pending), len(strokes) - len(pending))
        return results

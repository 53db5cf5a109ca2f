"""Tests for tube mesh generation and the mesh cache."""

import math

import numpy as np
import pytest

from airclay.config import DrawingConfig
from airclay.mesh import (
    CatmullRomCurve,
    MeshBuilder,
    MeshKey,
    compute_frenet_frames,
    float_motion,
    hsl_to_hex,
)
from airclay.profiler import PipelineProfiler
from airclay.strokes import Stroke

W, H = 640, 480


def wave_stroke(n=20, x0=100.0, y0=240.0):
    i = np.arange(n)
    return Stroke.from_points(np.column_stack([x0 + 15.0 * i, y0 + 60.0 * np.sin(i * 0.4)]))


def control_points():
    return np.array([
        [0.0, 0.0, 0.0],
        [1.0, 0.5, 0.1],
        [2.0, -0.5, 0.0],
        [3.0, 0.0, 0.3],
        [4.5, 1.0, 0.0],
    ])


class TestCatmullRomCurve:
    @pytest.mark.parametrize("curve_type", ["catmullrom", "centripetal", "chordal"])
    def test_passes_through_control_points(self, curve_type):
        pts = control_points()
        curve = CatmullRomCurve(pts, curve_type=curve_type)
        t = np.arange(len(pts)) / (len(pts) - 1)
        np.testing.assert_allclose(curve.get_points(t), pts, atol=1e-9)

    def test_arc_length_endpoints(self):
        curve = CatmullRomCurve(control_points())
        np.testing.assert_allclose(curve.u_to_t([0.0, 1.0]), [0.0, 1.0])
        assert curve.length > 4.5

    def test_arc_length_spacing_is_even(self):
        curve = CatmullRomCurve(control_points(), arc_length_divisions=400)
        samples = curve.get_points_at(np.linspace(0, 1, 21))
        steps = np.linalg.norm(np.diff(samples, axis=0), axis=1)
        assert steps.max() / steps.min() < 1.3

    def test_tangents_are_unit(self):
        curve = CatmullRomCurve(control_points())
        tangents = curve.get_tangents_at(np.linspace(0, 1, 33))
        np.testing.assert_allclose(np.linalg.norm(tangents, axis=1), 1.0, atol=1e-9)

    def test_straight_line(self):
        curve = CatmullRomCurve(np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [2.0, 0.0, 0.0]]))
        mid = curve.get_points_at([0.5])[0]
        np.testing.assert_allclose(mid, [1.0, 0.0, 0.0], atol=1e-3)

    def test_needs_two_points(self):
        with pytest.raises(ValueError):
            CatmullRomCurve(np.zeros((1, 3)))


class TestFrenetFrames:
    def test_frames_are_orthonormal(self):
        curve = CatmullRomCurve(control_points())
        tangents, normals, binormals = compute_frenet_frames(curve, 40)
        assert tangents.shape == normals.shape == binormals.shape == (41, 3)
        np.testing.assert_allclose(np.sum(tangents * normals, axis=1), 0.0, atol=1e-6)
        np.testing.assert_allclose(np.sum(tangents * binormals, axis=1), 0.0, atol=1e-6)
        np.testing.assert_allclose(np.linalg.norm(normals, axis=1), 1.0, atol=1e-6)

    def test_no_flips_on_smooth_curve(self):
        curve = CatmullRomCurve(control_points())
        _, normals, _ = compute_frenet_frames(curve, 64)
        # Consecutive normals stay close on a densely sampled smooth curve
        assert np.min(np.sum(normals[1:] * normals[:-1], axis=1)) > 0.7


class TestMeshBuilder:
    def test_short_strokes_have_no_mesh(self):
        builder = MeshBuilder()
        assert builder.build(Stroke.from_points([(10, 10)]), 0, W, H) is None
        assert builder.build(Stroke.from_points([(10, 10), (50, 50)]), 0, W, H) is None

    def test_three_points_make_a_mesh(self):
        mesh = MeshBuilder().build(Stroke.from_points([(100, 100), (200, 150), (300, 100)]), 0, W, H)
        assert mesh is not None

    def test_counts(self):
        mesh = MeshBuilder().build(wave_stroke(10), 0, W, H)
        assert mesh.tubular_segments == 64
        assert mesh.radial_segments == 12
        assert mesh.vertex_count == 65 * 13
        assert mesh.face_count == 2 * 64 * 12
        assert mesh.normals.shape == mesh.vertices.shape
        assert mesh.uvs.shape == (65 * 13, 2)
        assert mesh.faces.dtype == np.int32
        assert mesh.faces.max() == mesh.vertex_count - 1

    def test_tubular_segments_follow_point_count(self):
        config = DrawingConfig(chaikin_iterations=0)
        mesh = MeshBuilder(config).build(wave_stroke(5), 0, W, H)
        assert len(mesh.control_points) == 5
        assert mesh.tubular_segments == 15
        assert mesh.vertex_count == 16 * 13

    def test_centerline_spans_stroke(self):
        stroke = wave_stroke(10)
        builder = MeshBuilder()
        mesh = builder.build(stroke, 0, W, H)
        ends = builder.map_to_model(stroke.as_array()[[0, -1]], 0, W, H)
        np.testing.assert_allclose(mesh.centerline[0, :2], ends[0, :2], atol=1e-9)
        np.testing.assert_allclose(mesh.centerline[-1, :2], ends[1, :2], atol=1e-9)

    def test_vertices_sit_on_tube_surface(self):
        mesh = MeshBuilder().build(wave_stroke(12), 0, W, H)
        rings = mesh.vertices.reshape(mesh.tubular_segments + 1, mesh.radial_segments + 1, 3)
        dist = np.linalg.norm(rings - mesh.centerline[:, None, :], axis=2)
        np.testing.assert_allclose(dist, 0.12, atol=1e-9)
        # Each ring is closed by repeating its first vertex
        np.testing.assert_allclose(rings[:, 0], rings[:, -1], atol=1e-9)

    def test_deterministic(self):
        builder = MeshBuilder()
        a = builder.build(wave_stroke(), 3, W, H)
        b = builder.build(wave_stroke(), 3, W, H)
        np.testing.assert_array_equal(a.vertices, b.vertices)
        np.testing.assert_array_equal(a.faces, b.faces)

    def test_map_to_model(self):
        builder = MeshBuilder()
        mapped = builder.map_to_model(np.array([[320.0, 240.0], [0.0, 0.0], [640.0, 480.0]]), 0, W, H)
        np.testing.assert_allclose(mapped[0, :2], [0.0, 0.0])
        np.testing.assert_allclose(mapped[1, :2], [-2.5, 2.0])
        np.testing.assert_allclose(mapped[2, :2], [2.5, -2.0])
        np.testing.assert_allclose(mapped[:, 2], np.sin(np.arange(3) * 0.15) * 0.15)

    def test_depth_layers(self):
        builder = MeshBuilder()
        mesh = builder.build(wave_stroke(), 5, W, H)
        assert mesh.control_points[0, 2] == pytest.approx(2.5)
        assert mesh.position == pytest.approx((0.0, 0.0, 1.5))

    def test_depth_cycle_wraps(self):
        builder = MeshBuilder(DrawingConfig(depth_cycle=4))
        assert builder.depth_index(5) == 1
        mesh = builder.build(wave_stroke(), 5, W, H)
        assert mesh.control_points[0, 2] == pytest.approx(0.5)

    def test_unbounded_depth(self):
        builder = MeshBuilder(DrawingConfig(depth_cycle=None))
        assert builder.depth_index(100) == 100

    def test_colors_cycle_through_palette(self):
        builder = MeshBuilder()
        colors = [builder.material_for(i).color for i in range(7)]
        assert len(set(colors[:6])) == 6
        assert colors[6] == colors[0]
        assert colors[0] == hsl_to_hex(186, 0.55, 0.55)

    def test_material(self):
        material = MeshBuilder().material_for(1)
        assert material.hue == 210
        assert material.emissive == hsl_to_hex(210, 0.70, 0.20)
        assert material.emissive_intensity == pytest.approx(0.1)
        assert material.metalness == pytest.approx(0.05)
        assert material.roughness == pytest.approx(0.85)

    @pytest.mark.parametrize("curve_type", ["centripetal", "chordal"])
    def test_other_curve_types(self, curve_type):
        mesh = MeshBuilder(DrawingConfig(curve_type=curve_type)).build(wave_stroke(), 0, W, H)
        assert np.isfinite(mesh.vertices).all()

    def test_accepts_raw_arrays(self):
        mesh = MeshBuilder().build(wave_stroke().as_array(), 0, W, H)
        assert mesh.key == MeshKey(0, 20)

    def test_rejects_bad_viewport(self):
        with pytest.raises(ValueError):
            MeshBuilder().build(wave_stroke(), 0, 0, H)

    def test_to_dict(self):
        mesh = MeshBuilder().build(wave_stroke(), 2, W, H)
        data = mesh.to_dict()
        assert data["stroke_index"] == 2
        assert data["point_count"] == 20
        assert len(data["vertices"]) == mesh.vertex_count
        assert len(data["faces"]) == mesh.face_count
        assert data["material"]["color"] == mesh.color


class TestMeshProfiling:
    def test_synthesis_stage_recorded(self):
        profiler = PipelineProfiler()
        builder = MeshBuilder(profiler=profiler)
        builder.build(wave_stroke(), 0, W, H)
        builder.build(Stroke.from_points([(0, 0), (10, 10)]), 1, W, H)
        assert profiler.get_stage_stats("synthesis").call_count == 1

    def test_parallel_builds_count_every_stroke(self):
        profiler = PipelineProfiler()
        builder = MeshBuilder(DrawingConfig(mesh_workers=4), profiler=profiler)
        builder.build_all([wave_stroke(15 + k, x0=30.0 * k) for k in range(8)], W, H)
        assert profiler.get_stage_stats("synthesis").call_count == 8


class TestMeshCache:
    def test_mesh_for_reuses(self):
        builder = MeshBuilder()
        stroke = wave_stroke()
        first = builder.mesh_for(stroke, 0, W, H)
        second = builder.mesh_for(stroke, 0, W, H)
        assert first is second
        assert builder.cache.hits == 1

    def test_short_stroke_cached_as_none(self):
        builder = MeshBuilder()
        short = Stroke.from_points([(0, 0), (10, 10)])
        assert builder.build_all([short], W, H) == [None]
        assert MeshKey(0, 2) in builder.cache

    def test_build_all_only_builds_new_strokes(self):
        builder = MeshBuilder()
        strokes = [wave_stroke(20, x0=50.0 * k) for k in range(3)]
        first = builder.build_all(strokes[:2], W, H)
        misses = builder.cache.misses
        second = builder.build_all(strokes, W, H)
        assert builder.cache.misses == misses + 1
        assert second[0] is first[0]
        assert second[1] is first[1]
        assert second[2] is not None

    def test_viewport_change_rebuilds(self):
        builder = MeshBuilder()
        strokes = [wave_stroke()]
        before = builder.build_all(strokes, W, H)
        after = builder.build_all(strokes, 1280, 720)
        assert after[0] is not before[0]
        assert not np.allclose(after[0].vertices, before[0].vertices)

    def test_retain_drops_removed_strokes(self):
        builder = MeshBuilder()
        strokes = [wave_stroke(20, x0=50.0 * k) for k in range(3)]
        builder.build_all(strokes, W, H)
        assert len(builder.cache) == 3
        builder.build_all(strokes[:1], W, H)
        assert len(builder.cache) == 1

    def test_parallel_matches_sequential(self):
        strokes = [wave_stroke(15 + k, x0=30.0 * k) for k in range(6)]
        sequential = MeshBuilder().build_all(strokes, W, H)
        parallel = MeshBuilder(DrawingConfig(mesh_workers=3)).build_all(strokes, W, H)
        for a, b in zip(sequential, parallel):
            assert a.key == b.key
            np.testing.assert_array_equal(a.vertices, b.vertices)


class TestHelpers:
    @pytest.mark.parametrize("hue,expected", [
        (0, "#ff0000"),
        (120, "#00ff00"),
        (240, "#0000ff"),
        (360, "#ff0000"),
    ])
    def test_hsl_to_hex(self, hue, expected):
        assert hsl_to_hex(hue, 1.0, 0.5) == expected

    def test_float_motion(self):
        assert float_motion(0, 0.0) == (0.0, 0.0)
        bob, roll = float_motion(1, 0.0)
        assert bob == pytest.approx(math.sin(0.7) * 0.05)
        assert roll == pytest.approx(math.sin(1.0) * 0.02)
        bob, roll = float_motion(0, 10.0)
        assert abs(bob) <= 0.05
        assert abs(roll) <= 0.02

"""airclay CLI: the shell around the drawing pipeline.

Usage:
    airclay draw        — Draw in the air with the webcam
    airclay replay      — Replay a recorded landmark session
    airclay benchmark   — Time curve synthesis and mesh building
    airclay config      — Print or write the drawing config
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

import typer
import yaml

from airclay.config import DrawingConfig, load_config

app = typer.Typer(
    name="airclay",
    help="✍️  Draw 3D clay strokes in the air with your index finger.",
    add_completion=False,
)


@app.callback()
def main_options(
    log_level: str = typer.Option("warning", help="Log level"),
):
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


def _load_config_or_exit(path: Optional[str]) -> DrawingConfig:
    if path and not Path(path).exists():
        typer.echo(f"❌ Config not found: {path}", err=True)
        raise typer.Exit(1)
    try:
        return load_config(path)
    except (ValueError, yaml.YAMLError) as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)


def _echo_meshes(pipeline, width: float, height: float):
    strokes = pipeline.get_strokes()
    meshes = pipeline.build_meshes(width, height)
    typer.echo(f"\n🧱 {len(strokes)} strokes:")
    for i, (stroke, mesh) in enumerate(zip(strokes, meshes)):
        if mesh is None:
            typer.echo(f"   #{i}: {len(stroke)} points → no mesh (too short)")
        else:
            typer.echo(
                f"   #{i}: {len(stroke)} points → {mesh.vertex_count} vertices, "
                f"{mesh.face_count} faces, {mesh.color}"
            )


@app.command()
def draw(
    camera: int = typer.Option(0, help="Camera device index"),
    width: int = typer.Option(640, help="Capture width"),
    height: int = typer.Option(480, help="Capture height"),
    config: Optional[str] = typer.Option(None, help="Path to drawing config YAML"),
    record: Optional[str] = typer.Option(None, help="Save the landmark session to this JSON file"),
    mirror: bool = typer.Option(True, help="Mirror the camera image"),
):
    """Draw strokes in the air with the webcam (c = clear, q = quit)."""
    try:
        import cv2
    except ImportError:
        typer.echo("❌ opencv-python is required. Install with: pip install 'airclay[camera]'", err=True)
        raise typer.Exit(1)

    from airclay.detector import HandDetector
    from airclay.pipeline import DrawingPipeline
    from airclay.replay import SessionRecorder

    cfg = _load_config_or_exit(config)

    cap = cv2.VideoCapture(camera)
    if not cap.isOpened():
        typer.echo(f"❌ Could not open camera {camera}", err=True)
        raise typer.Exit(1)
    cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
    cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)

    try:
        detector = HandDetector()
    except ImportError as e:
        cap.release()
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)

    recorder = SessionRecorder()
    if record:
        recorder.start()

    pipeline = DrawingPipeline(cfg)
    pipeline.on_drawing_end(lambda: typer.echo(f"   ✏️  stroke ended ({pipeline.recorder.stroke_count} kept)"))

    typer.echo(f"🎥 Drawing from camera {camera}. Extend only your index finger to draw.")
    typer.echo("   Press 'c' to clear, 'q' to quit")

    frame_w, frame_h = width, height
    try:
        with pipeline:
            while True:
                ret, frame = cap.read()
                if not ret:
                    continue
                if mirror:
                    frame = cv2.flip(frame, 1)
                frame_h, frame_w = frame.shape[:2]

                hand = detector.detect(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))
                pipeline.process(hand, frame_w, frame_h)
                recorder.add_frame(hand, frame_w, frame_h)

                _draw_overlay(cv2, frame, pipeline)
                cv2.imshow("airclay", frame)
                key = cv2.waitKey(1) & 0xFF
                if key == ord("q"):
                    break
                if key == ord("c"):
                    pipeline.clear()
    except KeyboardInterrupt:
        pass
    finally:
        cap.release()
        detector.close()
        cv2.destroyAllWindows()

    if record:
        recorder.stop()
        recorder.save(record)
        typer.echo(f"💾 Session saved to: {record} ({recorder.frame_count} frames)")

    _echo_meshes(pipeline, frame_w, frame_h)


def _draw_overlay(cv2, frame, pipeline):
    """Completed strokes in cyan, the live stroke in green."""
    import numpy as np

    for stroke in pipeline.get_strokes():
        pts = stroke.as_array().astype(np.int32).reshape(-1, 1, 2)
        cv2.polylines(frame, [pts], False, (255, 212, 0), 3, cv2.LINE_AA)

    current = pipeline.recorder.current_points
    if len(current) >= 2:
        pts = np.array(current, dtype=np.int32).reshape(-1, 1, 2)
        cv2.polylines(frame, [pts], False, (85, 255, 0), 4, cv2.LINE_AA)

    status = "DRAWING" if pipeline.is_drawing else "idle"
    cv2.putText(frame, status, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.8, (0, 255, 0), 2)


@app.command()
def replay(
    recording: str = typer.Argument(..., help="Path to recorded session JSON"),
    config: Optional[str] = typer.Option(None, help="Path to drawing config YAML"),
    speed: float = typer.Option(1.0, help="Playback speed multiplier"),
    realtime: bool = typer.Option(False, help="Play at original timing"),
):
    """Replay a recorded landmark session through the drawing pipeline."""
    from airclay.pipeline import DrawingPipeline
    from airclay.replay import SessionPlayer

    path = Path(recording)
    if not path.exists():
        typer.echo(f"❌ Recording not found: {recording}", err=True)
        raise typer.Exit(1)

    cfg = _load_config_or_exit(config)
    player = SessionPlayer.load(path)
    typer.echo(f"▶️  Replaying {path.name} ({player.frame_count} frames, {player.duration:.1f}s)")

    pipeline = DrawingPipeline(cfg)
    last_size = (1.0, 1.0)
    with pipeline:
        frames = player.play_realtime(speed=speed) if realtime else player.play()
        for frame in frames:
            result = pipeline.process(frame.hand, frame.width, frame.height)
            last_size = (frame.width, frame.height)
            if result is not None and result.stroke_ended:
                kept = "kept" if result.stroke is not None else "dropped"
                typer.echo(f"   ✏️  stroke ended at t={frame.timestamp:.2f}s ({kept})")

    stats = pipeline.stats
    typer.echo(f"\n✅ Replay complete. {stats.drawing_frames}/{stats.total_frames} drawing frames.")
    _echo_meshes(pipeline, *last_size)


@app.command()
def benchmark(
    strokes: int = typer.Option(50, help="Number of synthetic strokes"),
    points: int = typer.Option(120, help="Points per stroke"),
    seed: int = typer.Option(42, help="Random seed"),
    config: Optional[str] = typer.Option(None, help="Path to drawing config YAML"),
):
    """Time curve synthesis and mesh building on synthetic strokes."""
    import numpy as np

    from airclay.mesh import MeshBuilder
    from airclay.profiler import PipelineProfiler
    from airclay.strokes import Stroke

    cfg = _load_config_or_exit(config)
    width, height = 640.0, 480.0

    rng = np.random.default_rng(seed)
    synthetic = []
    for _ in range(strokes):
        start = rng.uniform([100, 100], [540, 380])
        walk = start + np.cumsum(rng.normal(0, 6, size=(points, 2)), axis=0)
        synthetic.append(Stroke.from_points(np.clip(walk, 0, [width, height])))

    typer.echo(f"⚡ Running benchmark: {strokes} strokes × {points} points")

    profiler = PipelineProfiler()
    builder = MeshBuilder(cfg, profiler=profiler)

    t0 = time.perf_counter()
    for i, stroke in enumerate(synthetic):
        with profiler.stage("mesh"):
            builder.build(stroke, i, width, height)
    elapsed = time.perf_counter() - t0

    typer.echo(f"\n📊 Results:")
    typer.echo(f"   Total:      {elapsed * 1000:.1f} ms")
    typer.echo(f"   Per stroke: {elapsed / max(strokes, 1) * 1000:.2f} ms")

    typer.echo(f"\n📈 Stage breakdown:")
    for name, stats in profiler.summary().items():
        typer.echo(f"   {name:12s} avg={stats['avg_ms']:.3f}ms  p95={stats['p95_ms']:.3f}ms")


@app.command("config")
def show_config(
    config: Optional[str] = typer.Option(None, help="Config YAML to load instead of defaults"),
    output: Optional[str] = typer.Option(None, "-o", "--output", help="Write to this file instead of stdout"),
):
    """Print the effective drawing config as YAML."""
    cfg = _load_config_or_exit(config)
    if output:
        cfg.to_yaml(output)
        typer.echo(f"💾 Config written to: {output}")
    else:
        typer.echo(cfg.dump_yaml(), nl=False)


def main():
    app()


if __name__ == "__main__":
    main()

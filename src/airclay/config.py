"""Drawing pipeline tunables.

All constants of the gesture-to-geometry pipeline live in one dataclass so
they can be tuned from a YAML file instead of being scattered through the
code. Loading:

    config = DrawingConfig.from_yaml("airclay.yml")
    config = load_config()  # defaults, or $AIRCLAY_CONFIG when set
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger("airclay.config")

CONFIG_ENV_VAR = "AIRCLAY_CONFIG"

CURVE_TYPES = ("catmullrom", "centripetal", "chordal")

DEFAULT_HUES = (186, 210, 280, 330, 45, 150)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class DrawingConfig:
    # Stabilizer
    smoothing_factor: float = 0.8

    # Stroke recorder (~2px)
    min_distance_sq: float = 4.0

    # Curve synthesis
    max_curve_points: int = 30
    chaikin_iterations: int = 3

    # Model-space mapping
    volume_width: float = 5.0
    volume_height: float = 4.0
    z_wave_frequency: float = 0.15
    z_wave_amplitude: float = 0.15
    depth_step: float = 0.5
    depth_cycle: Optional[int] = 32
    mesh_depth_offset: float = 0.3

    # Tube geometry
    tube_radius: float = 0.12
    radial_segments: int = 12
    tubular_segments_per_point: int = 3
    max_tubular_segments: int = 64
    curve_type: str = "catmullrom"
    curve_tension: float = 0.5
    arc_length_divisions: int = 200

    # Material
    hue_palette: tuple[int, ...] = DEFAULT_HUES
    saturation: float = 0.55
    lightness: float = 0.55
    emissive_saturation: float = 0.70
    emissive_lightness: float = 0.20
    emissive_intensity: float = 0.1
    metalness: float = 0.05
    roughness: float = 0.85

    # Parallel mesh building across strokes
    mesh_workers: int = 1

    def __post_init__(self):
        # Badly typed palettes are left alone for validate() to report
        if isinstance(self.hue_palette, (list, tuple)) and all(_is_number(h) for h in self.hue_palette):
            self.hue_palette = tuple(int(h) for h in self.hue_palette)

    def _type_problems(self) -> list[str]:
        problems = []
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "depth_cycle":
                ok = value is None or _is_int(value)
            elif isinstance(f.default, tuple):
                ok = isinstance(value, tuple) and all(_is_int(v) for v in value)
            elif isinstance(f.default, int):
                ok = _is_int(value)
            elif isinstance(f.default, float):
                ok = _is_number(value)
            else:
                ok = isinstance(value, type(f.default))
            if not ok:
                problems.append(f"{f.name} has wrong type: {value!r}")
        return problems

    def validate(self) -> DrawingConfig:
        """Check value types and ranges. Returns self so calls can be chained."""
        problems = self._type_problems()
        if problems:
            raise ValueError("Invalid drawing config: " + "; ".join(problems))

        if not 0.0 < self.smoothing_factor <= 1.0:
            problems.append(f"smoothing_factor must be in (0, 1], got {self.smoothing_factor}")
        if self.min_distance_sq < 0:
            problems.append(f"min_distance_sq must be >= 0, got {self.min_distance_sq}")
        if self.max_curve_points < 2:
            problems.append(f"max_curve_points must be >= 2, got {self.max_curve_points}")
        if self.chaikin_iterations < 0:
            problems.append(f"chaikin_iterations must be >= 0, got {self.chaikin_iterations}")
        if self.volume_width <= 0 or self.volume_height <= 0:
            problems.append("volume_width and volume_height must be positive")
        if self.depth_cycle is not None and self.depth_cycle < 1:
            problems.append(f"depth_cycle must be >= 1 or None, got {self.depth_cycle}")
        if self.tube_radius <= 0:
            problems.append(f"tube_radius must be positive, got {self.tube_radius}")
        if self.radial_segments < 3:
            problems.append(f"radial_segments must be >= 3, got {self.radial_segments}")
        if self.tubular_segments_per_point < 1 or self.max_tubular_segments < 1:
            problems.append("tubular segment bounds must be >= 1")
        if self.curve_type not in CURVE_TYPES:
            problems.append(f"curve_type must be one of {CURVE_TYPES}, got {self.curve_type!r}")
        if self.arc_length_divisions < 1:
            problems.append(f"arc_length_divisions must be >= 1, got {self.arc_length_divisions}")
        if not self.hue_palette:
            problems.append("hue_palette must not be empty")
        if self.mesh_workers < 1:
            problems.append(f"mesh_workers must be >= 1, got {self.mesh_workers}")

        if problems:
            raise ValueError("Invalid drawing config: " + "; ".join(problems))
        return self

    def to_dict(self) -> dict:
        data = asdict(self)
        data["hue_palette"] = list(self.hue_palette)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> DrawingConfig:
        if not isinstance(data, dict):
            raise ValueError(f"Drawing config must be a mapping, got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
        return cls(**data).validate()

    @classmethod
    def from_yaml(cls, path: str | Path) -> DrawingConfig:
        """Load a config from a YAML file. Missing keys keep their defaults."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")

        config = cls.from_dict(data.get("drawing", data))
        logger.info("Loaded drawing config from %s", path)
        return config

    def to_yaml(self, path: str | Path):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            f.write(self.dump_yaml())

    def dump_yaml(self) -> str:
        return yaml.dump({"drawing": self.to_dict()}, default_flow_style=False, sort_keys=False)


def load_config(path: Optional[str | Path] = None) -> DrawingConfig:
    """Load config from ``path``, then ``$AIRCLAY_CONFIG``, else defaults."""
    path = path or os.environ.get(CONFIG_ENV_VAR)
    if path:
        return DrawingConfig.from_yaml(path)
    return DrawingConfig().validate()

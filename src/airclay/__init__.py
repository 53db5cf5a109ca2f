"""airclay - Draw 3D clay strokes in the air from hand landmarks."""

__version__ = "0.1.0"

from airclay.landmarks import HandLandmark, Point, as_hand_pose
from airclay.classifier import Classification, FingerState, GestureClassifier, GestureState
from airclay.smoothing import ExponentialSmoother
from airclay.strokes import PreviewSegment, Stroke, StrokeRecorder, stroke_segments
from airclay.curves import CurveSynthesizer, chaikin_smooth, downsample, synthesize
from airclay.mesh import CatmullRomCurve, MeshBuilder, MeshKey, TubeMesh
from airclay.config import DrawingConfig, load_config
from airclay.pipeline import DrawingPipeline, FrameResult, PipelineStats
from airclay.profiler import PipelineProfiler
from airclay.replay import SessionPlayer, SessionRecorder

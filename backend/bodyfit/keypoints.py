"""Keypoint frame: the per-frame input contract of the pipeline.

Keypoints arrive in the pixel space of the destination surface (640x480 by
default). A frame is looked up by joint name exactly once per processing
cycle via :meth:`KeypointFrame.resolve`, which yields a struct with one
optional field per joint.
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union


class JointName(str, Enum):
    """The 17 COCO/MoveNet keypoint names."""

    NOSE = "nose"
    LEFT_EYE = "left_eye"
    RIGHT_EYE = "right_eye"
    LEFT_EAR = "left_ear"
    RIGHT_EAR = "right_ear"
    LEFT_SHOULDER = "left_shoulder"
    RIGHT_SHOULDER = "right_shoulder"
    LEFT_ELBOW = "left_elbow"
    RIGHT_ELBOW = "right_elbow"
    LEFT_WRIST = "left_wrist"
    RIGHT_WRIST = "right_wrist"
    LEFT_HIP = "left_hip"
    RIGHT_HIP = "right_hip"
    LEFT_KNEE = "left_knee"
    RIGHT_KNEE = "right_knee"
    LEFT_ANKLE = "left_ankle"
    RIGHT_ANKLE = "right_ankle"


_JOINTS_BY_VALUE = {j.value: j for j in JointName}

# MediaPipe Pose landmark index -> joint name
MEDIAPIPE_INDEX = {
    0: JointName.NOSE,
    2: JointName.LEFT_EYE,
    5: JointName.RIGHT_EYE,
    7: JointName.LEFT_EAR,
    8: JointName.RIGHT_EAR,
    11: JointName.LEFT_SHOULDER,
    12: JointName.RIGHT_SHOULDER,
    13: JointName.LEFT_ELBOW,
    14: JointName.RIGHT_ELBOW,
    15: JointName.LEFT_WRIST,
    16: JointName.RIGHT_WRIST,
    23: JointName.LEFT_HIP,
    24: JointName.RIGHT_HIP,
    25: JointName.LEFT_KNEE,
    26: JointName.RIGHT_KNEE,
    27: JointName.LEFT_ANKLE,
    28: JointName.RIGHT_ANKLE,
}


def parse_joint_name(name: str) -> Union[JointName, str]:
    """Map a raw name onto :class:`JointName`, passing unknown names through."""
    if isinstance(name, JointName):
        return name
    return _JOINTS_BY_VALUE.get(name, name)


@dataclass(frozen=True)
class Keypoint:
    """A single named 2D detection."""

    name: Union[JointName, str]
    x: float
    y: float
    confidence: float

    def is_visible(self, min_confidence: float) -> bool:
        return self.confidence > min_confidence

    @property
    def xy(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True)
class ResolvedJoints:
    """One optional field per joint, resolved once per frame."""

    nose: Optional[Keypoint] = None
    left_eye: Optional[Keypoint] = None
    right_eye: Optional[Keypoint] = None
    left_ear: Optional[Keypoint] = None
    right_ear: Optional[Keypoint] = None
    left_shoulder: Optional[Keypoint] = None
    right_shoulder: Optional[Keypoint] = None
    left_elbow: Optional[Keypoint] = None
    right_elbow: Optional[Keypoint] = None
    left_wrist: Optional[Keypoint] = None
    right_wrist: Optional[Keypoint] = None
    left_hip: Optional[Keypoint] = None
    right_hip: Optional[Keypoint] = None
    left_knee: Optional[Keypoint] = None
    right_knee: Optional[Keypoint] = None
    left_ankle: Optional[Keypoint] = None
    right_ankle: Optional[Keypoint] = None

    def get(self, joint: JointName) -> Optional[Keypoint]:
        return getattr(self, joint.value)


@dataclass(frozen=True)
class KeypointFrame:
    """Ordered keypoints for one video frame."""

    keypoints: Tuple[Keypoint, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.keypoints)

    def __iter__(self):
        return iter(self.keypoints)

    def get(self, name: Union[JointName, str]) -> Optional[Keypoint]:
        """First keypoint carrying ``name``, or None."""
        name = parse_joint_name(name)
        for kp in self.keypoints:
            if kp.name == name:
                return kp
        return None

    def resolve(self, min_confidence: Optional[float] = None) -> ResolvedJoints:
        """Resolve the frame into a :class:`ResolvedJoints` struct.

        Args:
            min_confidence: when given, keypoints at or below this confidence
                are treated as missing

        Returns:
            ResolvedJoints where duplicates resolve to the first occurrence,
            which is then subject to the confidence filter
        """
        found: Dict[str, Keypoint] = {}
        for kp in self.keypoints:
            if isinstance(kp.name, JointName):
                found.setdefault(kp.name.value, kp)
        if min_confidence is not None:
            found = {name: kp for name, kp in found.items() if kp.is_visible(min_confidence)}
        return ResolvedJoints(**found)

    def max_y(self) -> Optional[float]:
        if not self.keypoints:
            return None
        return max(kp.y for kp in self.keypoints)

    @classmethod
    def from_list(cls, items: Iterable[Mapping]) -> "KeypointFrame":
        """Build a frame from MoveNet-style dicts.

        Each item needs ``x`` and ``y`` plus ``name`` (or ``part``); the
        confidence is read from ``confidence`` or ``score`` and defaults to 0.
        """
        keypoints: List[Keypoint] = []
        for item in items:
            name = item.get("name", item.get("part"))
            if name is None:
                raise ValueError("Keypoint is missing a 'name'")
            score = item.get("confidence", item.get("score"))
            x, y = float(item["x"]), float(item["y"])
            if not (math.isfinite(x) and math.isfinite(y)):
                raise ValueError(f"Keypoint {name!r} has a non-finite position")
            keypoints.append(Keypoint(
                name=parse_joint_name(name),
                x=x,
                y=y,
                confidence=float(score) if score is not None else 0.0,
            ))
        return cls(tuple(keypoints))

    @classmethod
    def from_landmarks(cls, landmarks: List[Dict]) -> "KeypointFrame":
        """Build a frame from MediaPipe landmarks in ``x_px``/``y_px`` dict form.

        Landmarks without a counterpart in :class:`JointName` are dropped.
        """
        keypoints: List[Keypoint] = []
        for i, lm in enumerate(landmarks):
            idx = lm.get("index", i)
            joint = MEDIAPIPE_INDEX.get(idx)
            if joint is None:
                continue
            vis = lm.get("visibility")
            x, y = float(lm.get("x_px", 0)), float(lm.get("y_px", 0))
            if not (math.isfinite(x) and math.isfinite(y)):
                raise ValueError(f"Landmark {idx} has a non-finite position")
            keypoints.append(Keypoint(
                name=joint,
                x=x,
                y=y,
                confidence=float(vis) if vis is not None else 0.0,
            ))
        return cls(tuple(keypoints))

    def to_list(self) -> List[Dict]:
        return [
            {
                "name": kp.name.value if isinstance(kp.name, JointName) else kp.name,
                "x": kp.x,
                "y": kp.y,
                "confidence": kp.confidence,
            }
            for kp in self.keypoints
        ]

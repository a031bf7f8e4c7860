"""Pose quality gate.

Labels a single frame's usefulness for measurement. The classification is a
pure function of the frame and the config.
"""
import logging
from enum import Enum
from typing import Tuple

from bodyfit.config import DEFAULT_CONFIG, PipelineConfig
from bodyfit.keypoints import JointName, KeypointFrame

logger = logging.getLogger(__name__)


class PoseQuality(str, Enum):
    NO_POSE = "no-pose"
    PARTIAL = "partial"
    TOO_FAR = "too-far"
    TOO_CLOSE = "too-close"
    GOOD = "good"


REQUIRED_JOINTS: Tuple[JointName, ...] = (
    JointName.NOSE,
    JointName.LEFT_SHOULDER,
    JointName.RIGHT_SHOULDER,
    JointName.LEFT_HIP,
    JointName.RIGHT_HIP,
    JointName.LEFT_ANKLE,
    JointName.RIGHT_ANKLE,
)

# Hints shown to the user for each non-good quality
QUALITY_HINTS = {
    PoseQuality.NO_POSE: "No person detected",
    PoseQuality.PARTIAL: "Show full body",
    PoseQuality.TOO_FAR: "Too far! Step closer",
    PoseQuality.TOO_CLOSE: "Too close! Step back",
    PoseQuality.GOOD: "Perfect! Hold still",
}


def classify_pose(frame: KeypointFrame, config: PipelineConfig = DEFAULT_CONFIG) -> PoseQuality:
    """Classify a keypoint frame.

    At most one required joint may be missing or below the confidence
    threshold. The shoulder span (horizontal only) is then checked against the
    distance window calibrated for a 640 px wide frame.

    Args:
        frame: keypoints for one video frame
        config: thresholds

    Returns:
        PoseQuality tag
    """
    if len(frame) == 0:
        return PoseQuality.NO_POSE

    joints = frame.resolve(min_confidence=config.min_confidence)
    visible = sum(1 for j in REQUIRED_JOINTS if joints.get(j) is not None)

    if visible < len(REQUIRED_JOINTS) - 1:
        logger.debug(f"Partial pose: {visible}/{len(REQUIRED_JOINTS)} required joints visible")
        return PoseQuality.PARTIAL

    ls, rs = joints.left_shoulder, joints.right_shoulder
    if ls is not None and rs is not None:
        shoulder_width = abs(rs.x - ls.x)
        if shoulder_width < config.too_far_shoulder_px:
            return PoseQuality.TOO_FAR
        if shoulder_width > config.too_close_shoulder_px:
            return PoseQuality.TOO_CLOSE

    return PoseQuality.GOOD

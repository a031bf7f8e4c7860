"""Shared fixtures for BodyFit tests."""
import sys
from io import BytesIO
from pathlib import Path

import pytest
from PIL import Image, ImageDraw

sys.path.insert(0, str(Path(__file__).parent.parent))


# Full-body front view on a 640x480 frame, mirrored like a selfie camera
FRONT_POSE = {
    "nose": (250, 100),
    "left_shoulder": (200, 150),
    "right_shoulder": (300, 150),
    "left_elbow": (180, 220),
    "right_elbow": (320, 220),
    "left_wrist": (170, 280),
    "right_wrist": (330, 280),
    "left_hip": (210, 300),
    "right_hip": (290, 300),
    "left_knee": (212, 380),
    "right_knee": (288, 380),
    "left_ankle": (215, 450),
    "right_ankle": (285, 450),
}


def make_keypoints(overrides=None, drop=(), score=0.9):
    """Keypoint dicts for FRONT_POSE with some joints moved or removed."""
    pose = dict(FRONT_POSE)
    pose.update(overrides or {})
    return [
        {"name": name, "x": float(x), "y": float(y), "score": score}
        for name, (x, y) in pose.items()
        if name not in drop
    ]


@pytest.fixture
def front_keypoints():
    return make_keypoints()


@pytest.fixture
def sample_frame_image():
    """Plain 640x480 JPEG standing in for a camera frame."""
    img = Image.new('RGB', (640, 480), color=(90, 90, 90))
    buf = BytesIO()
    img.save(buf, format='JPEG', quality=90)
    return buf.getvalue()


@pytest.fixture
def sample_garment_image():
    """Garment PNG with a transparent background."""
    img = Image.new('RGBA', (200, 300), color=(0, 0, 0, 0))
    draw = ImageDraw.Draw(img)
    draw.rectangle([20, 10, 180, 290], fill=(30, 60, 200, 255))
    buf = BytesIO()
    img.save(buf, format='PNG')
    return buf.getvalue()


@pytest.fixture
def pose_factory():
    """Build keypoint dicts from FRONT_POSE: ``pose_factory(overrides, drop, score)``."""
    return make_keypoints

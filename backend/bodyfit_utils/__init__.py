"""
Utilities package for BodyFit.

This package contains utility functions for:
- Geometric calculations on 2D points
- Image decoding at the service boundary
- Formatting pipeline outputs for clients
"""

__version__ = "1.0.0"

from . import geometry
from . import preprocess
from . import postprocess

__all__ = ["geometry", "preprocess", "postprocess"]

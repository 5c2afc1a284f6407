"""
Route Animator.

Builds multi-leg travel routes, plays back an animated traversal and
captures it as video.
"""

from .session import Session

__version__ = "0.1.0"

__all__ = ["Session", "__version__"]

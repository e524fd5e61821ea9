"""Live camera overlay for face, hand, body, object, text and contour detection."""

__version__ = "0.1.0"

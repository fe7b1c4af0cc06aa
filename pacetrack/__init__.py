"""pacetrack - GPS run tracking: position filtering, distance and pace statistics."""

__version__ = "0.1.0"

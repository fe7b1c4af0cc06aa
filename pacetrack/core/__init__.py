"""pacetrack Core - Position filtering, run statistics, session orchestration and event bus."""

from .distance import DistanceAccumulator, distance_between, distance_in_meters
from .events import Event, EventBus, EventType
from .filtering import AccuracyFilter, BestSampleSelector, RecencyWindow
from .session import RunPersister, SessionState, TrackingSession
from .stats import PaceTracker, TrackDownsampler

__all__ = [
    "AccuracyFilter",
    "BestSampleSelector",
    "DistanceAccumulator",
    # Events
    "Event",
    "EventBus",
    "EventType",
    "PaceTracker",
    "RecencyWindow",
    "RunPersister",
    "SessionState",
    "TrackDownsampler",
    # Session
    "TrackingSession",
    "distance_between",
    "distance_in_meters",
]

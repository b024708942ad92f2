from .models import TimelineEntry
from .timeline_db import TimelineDB

__all__ = [
    "TimelineEntry",
    "TimelineDB",
]

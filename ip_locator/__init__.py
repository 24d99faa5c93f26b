"""IP Locator: batch IP geolocation with provider fallback, caching and clustering."""

from .engine import BatchRun, LocatorEngine
from .models import Cluster, LocationRecord, ResolutionOutcome

__all__ = ["LocatorEngine", "BatchRun", "LocationRecord", "ResolutionOutcome", "Cluster"]

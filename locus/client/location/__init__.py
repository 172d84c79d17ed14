"""Location resolution: logical ids to concrete URLs."""

from .defaults import DEFAULT_LOCATIONS, default_locations
from .matrix import LocationContext, LocationDescriptor, LocationMatrix

__all__ = [
    "DEFAULT_LOCATIONS",
    "LocationContext",
    "LocationDescriptor",
    "LocationMatrix",
    "default_locations",
]

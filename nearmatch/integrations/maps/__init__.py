"""
Maps & Location integration package
===================================

Public API for the Mapbox geocoder used to turn free-text addresses into
search points.

Typical usage::

    from nearmatch.integrations.maps import MapboxGeocoder

    geocoder = MapboxGeocoder()
    point = await geocoder.resolve("100 Queen St W, Toronto")
"""

from nearmatch.integrations.maps.geocoder import MapboxGeocoder
from nearmatch.integrations.maps.mapboxService import MapboxError, geocode_address

__all__ = [
    # mapboxService
    "MapboxError",
    "geocode_address",
    # geocoder
    "MapboxGeocoder",
]

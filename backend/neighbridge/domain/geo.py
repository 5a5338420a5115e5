"""Great-circle distance and coordinate validation."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

EARTH_RADIUS_M = 6_371_000
# Arc length of one degree on the haversine sphere; bounding boxes must use the same radius.
METERS_PER_DEGREE = EARTH_RADIUS_M * math.pi / 180


@dataclass(frozen=True, slots=True)
class Coordinate:
	latitude: float
	longitude: float


class InvalidCoordinate(ValueError):
	"""Raised when a latitude/longitude pair is non-numeric, non-finite or out of range."""


def is_valid(latitude: Any, longitude: Any) -> bool:
	if isinstance(latitude, bool) or isinstance(longitude, bool):
		return False
	if not isinstance(latitude, (int, float)) or not isinstance(longitude, (int, float)):
		return False
	if not (math.isfinite(latitude) and math.isfinite(longitude)):
		return False
	return -90 <= latitude <= 90 and -180 <= longitude <= 180


def coordinate(latitude: Any, longitude: Any) -> Coordinate:
	"""Build a validated Coordinate; never clamps."""
	if not is_valid(latitude, longitude):
		raise InvalidCoordinate(f"invalid coordinate ({latitude!r}, {longitude!r})")
	return Coordinate(latitude=float(latitude), longitude=float(longitude))


def distance_meters(a: Coordinate, b: Coordinate) -> float:
	"""Return the haversine distance between two points in meters."""
	if a == b:
		return 0.0
	phi1, phi2 = math.radians(a.latitude), math.radians(b.latitude)
	dphi = math.radians(b.latitude - a.latitude)
	dlambda = math.radians(b.longitude - a.longitude)
	h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
	h = min(1.0, max(0.0, h))
	return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def contains(center: Coordinate, radius_m: float, point: Coordinate) -> bool:
	return distance_meters(center, point) <= radius_m


def bounding_box(origin: Coordinate, radius_m: float) -> tuple[float, float, float, float]:
	"""Return (min_lat, max_lat, min_lng, max_lng) enclosing a circle around origin.

	Longitude bounds widen to the full range near the poles or across the antimeridian.
	"""
	# One meter of slack so rounding never puts an on-circle point outside the box.
	padded_m = radius_m + 1
	dlat = padded_m / METERS_PER_DEGREE
	min_lat = max(-90.0, origin.latitude - dlat)
	max_lat = min(90.0, origin.latitude + dlat)
	# Widest longitude span of the circle is at its most poleward latitude.
	cos_lat = math.cos(math.radians(max(abs(min_lat), abs(max_lat))))
	if cos_lat < 1e-6 or min_lat <= -90.0 or max_lat >= 90.0:
		return min_lat, max_lat, -180.0, 180.0
	dlng = padded_m / (METERS_PER_DEGREE * cos_lat)
	min_lng = origin.longitude - dlng
	max_lng = origin.longitude + dlng
	if min_lng < -180.0 or max_lng > 180.0:
		return min_lat, max_lat, -180.0, 180.0
	return min_lat, max_lat, min_lng, max_lng


def round_up_to_bucket(distance: float, bucket: int) -> int:
	if bucket <= 0:
		return int(distance)
	return int(math.ceil(max(distance, 0.0) / bucket) * bucket)

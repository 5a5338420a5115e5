"""Models for stored user locations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from neighbridge.domain.geo import Coordinate


class UserLocation(BaseModel):
	user_id: str
	latitude: float
	longitude: float
	address: Optional[str] = None
	city: Optional[str] = None
	state: Optional[str] = None
	country: Optional[str] = None
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)

	@property
	def coordinate(self) -> Coordinate:
		return Coordinate(latitude=self.latitude, longitude=self.longitude)


@dataclass(frozen=True, slots=True)
class AddressFields:
	address: Optional[str] = None
	city: Optional[str] = None
	state: Optional[str] = None
	country: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ResolvedLocation:
	"""Best known position for a user; `is_fallback` means it is not personalised."""

	coordinate: Coordinate
	is_fallback: bool
	location: Optional[UserLocation] = None


@dataclass(frozen=True, slots=True)
class NearbyUser:
	user_id: str
	distance_m: int
	city: Optional[str] = None
	state: Optional[str] = None
	country: Optional[str] = None

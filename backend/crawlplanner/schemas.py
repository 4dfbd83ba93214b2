from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def _new_id() -> str:
    return uuid.uuid4().hex


class Participant(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    address: Optional[str] = None
    is_host: bool = False

    @field_validator('name')
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        v = (v or '').strip()
        if not v:
            raise ValueError('name must not be empty')
        return v

    @field_validator('address')
    @classmethod
    def _strip_address(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @property
    def can_host(self) -> bool:
        return bool(self.address)


class Coordinates(BaseModel):
    lat: float
    lng: float


class TextValue(BaseModel):
    text: str = ''
    value: float = 0


class TransitVehicle(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None
    local_icon: Optional[str] = None


class TransitLine(BaseModel):
    name: Optional[str] = None
    short_name: Optional[str] = None
    color: Optional[str] = None
    vehicle: Optional[TransitVehicle] = None


class TransitDetails(BaseModel):
    departure_stop: Optional[str] = None
    arrival_stop: Optional[str] = None
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    headsign: Optional[str] = None
    num_stops: Optional[int] = None
    line: Optional[TransitLine] = None


class RouteStep(BaseModel):
    travel_mode: str = ''
    instructions: str = ''
    distance: TextValue = Field(default_factory=TextValue)
    duration: TextValue = Field(default_factory=TextValue)
    transit: Optional[TransitDetails] = None


class RouteLeg(BaseModel):
    overall_mode: str = 'WALKING'
    total_duration: Optional[TextValue] = None
    start_address: str = ''
    end_address: str = ''
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    distance: Optional[TextValue] = None
    steps: List[RouteStep] = Field(default_factory=list)
    is_fallback: bool = False
    failure_reason: Optional[str] = None

    @property
    def total_duration_seconds(self) -> float:
        if self.total_duration is None:
            return 0.0
        return float(self.total_duration.value or 0)

    @classmethod
    def fallback(cls, origin: Optional[str], destination: Optional[str], departure: Optional[datetime], reason: str) -> 'RouteLeg':
        """Zero-duration leg used when the provider could not resolve a hop."""
        return cls(
            overall_mode='UNKNOWN',
            total_duration=TextValue(text='0 mins', value=0),
            start_address=origin or '',
            end_address=destination or '',
            departure_time=departure.isoformat() if departure else None,
            is_fallback=True,
            failure_reason=reason,
        )


class EventConfig(BaseModel):
    start_address: str
    end_address: str
    start_datetime: datetime
    time_per_stop_minutes: int = Field(gt=0)
    num_groups: int = Field(ge=1)
    num_stops: int = Field(ge=1)

    @model_validator(mode='after')
    def _groups_cover_stops(self) -> 'EventConfig':
        if self.num_groups < self.num_stops:
            raise ValueError('num_groups must be at least num_stops so every stop has a host')
        return self


class HostGroupInfo(BaseModel):
    host_name: str
    host_group_members: str


class ItineraryLeg(BaseModel):
    travel_mode: str
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    start_address: str = ''
    end_address: str = ''
    distance_text: str = ''
    duration_text: str = ''
    steps: List[RouteStep] = Field(default_factory=list)
    host_group: HostGroupInfo
    is_fallback: bool = False


class Itinerary(BaseModel):
    start_address: str
    end_address: str
    start_datetime: str
    members: List[str]
    legs: List[ItineraryLeg]


class SearchRequest(BaseModel):
    trials: Optional[int] = Field(None, ge=1)
    top_k: Optional[int] = Field(None, ge=1)
    seed: Optional[int] = None


class ExportBundle(BaseModel):
    config: Optional[Dict[str, Any]] = None
    participants: List[Dict[str, Any]] = Field(default_factory=list)
    results: List[Dict[str, Any]] = Field(default_factory=list)

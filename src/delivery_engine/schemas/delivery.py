"""Pydantic request/response models for delivery endpoints."""

from __future__ import annotations

from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from ..models.domain import (
    Address,
    Coordinate,
    GeocodeFailed,
    Incomplete,
    OutOfCoverage,
    Resolved,
    ResolutionResult,
)


class CoordinatePayload(BaseModel):
    latitude: float = Field(..., ge=-90, le=90, description="Latitude in decimal degrees")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude in decimal degrees")

    def to_domain(self) -> Coordinate:
        return Coordinate(latitude=self.latitude, longitude=self.longitude)

    @classmethod
    def from_domain(cls, coordinate: Coordinate) -> "CoordinatePayload":
        return cls(latitude=coordinate.latitude, longitude=coordinate.longitude)


class AddressPayload(BaseModel):
    street: str = ""
    number: str = ""
    neighborhood: str = ""
    city: str = ""
    postal_code: str = ""
    complement: Optional[str] = None
    state: Optional[str] = None

    def to_domain(self) -> Address:
        return Address(**self.model_dump())


class QuoteRequest(BaseModel):
    address: Optional[AddressPayload] = Field(default=None, description="Address typed by the customer.")
    coordinate: Optional[CoordinatePayload] = Field(
        default=None,
        description="Point picked on the map; skips geocoding when present.",
    )

    @model_validator(mode="after")
    def _require_location(self) -> "QuoteRequest":
        if self.address is None and self.coordinate is None:
            raise ValueError("Either address or coordinate is required.")
        return self


class QuoteResponse(BaseModel):
    merchant_id: str
    status: Literal["resolved", "out_of_coverage", "geocode_failed", "incomplete"]
    fee: Optional[Decimal] = None
    min_time: Optional[int] = None
    max_time: Optional[int] = None
    distance_km: Optional[float] = None
    zone_id: Optional[str] = None
    reason: Optional[str] = None
    missing_fields: list[str] = Field(default_factory=list)
    coordinate: Optional[CoordinatePayload] = None

    @classmethod
    def from_result(
        cls,
        merchant_id: str,
        result: ResolutionResult,
        coordinate: Coordinate | None = None,
    ) -> "QuoteResponse":
        payload: dict = {
            "merchant_id": merchant_id,
            "status": result.status,
            "coordinate": CoordinatePayload.from_domain(coordinate) if coordinate else None,
        }
        if isinstance(result, Resolved):
            payload.update(
                fee=result.fee,
                min_time=result.min_time,
                max_time=result.max_time,
                distance_km=result.distance_km,
                zone_id=result.zone_id,
            )
        elif isinstance(result, OutOfCoverage):
            payload["distance_km"] = result.distance_km
        elif isinstance(result, GeocodeFailed):
            payload["reason"] = result.reason.value
        elif isinstance(result, Incomplete):
            payload["missing_fields"] = list(result.missing_fields)
        return cls(**payload)


class ZoneSchema(BaseModel):
    zone_id: str
    name: Optional[str] = None
    max_distance_km: float
    fee: Decimal
    min_time: Optional[int] = None
    max_time: Optional[int] = None
    coverage: Optional[dict] = Field(default=None, description="GeoJSON polygon of the zone's coverage circle.")


class ZoneConflict(BaseModel):
    max_distance_km: float
    zone_ids: list[str]
    selected_zone_id: str


class ZoneTableResponse(BaseModel):
    merchant_id: str
    storefront: CoordinatePayload
    charges_delivery_fee: bool
    zones: list[ZoneSchema]
    conflicts: list[ZoneConflict]

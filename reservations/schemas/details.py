"""Asset-specific reservation details, discriminated by ``asset_type``."""

from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import BaseModel, Field


class ActivityDetails(BaseModel):
    asset_type: Literal["activity"] = "activity"
    language: str | None = Field(None, max_length=20)
    meeting_point: str | None = Field(None, max_length=300)
    participant_names: list[str] = Field(default_factory=list)


class EventDetails(BaseModel):
    asset_type: Literal["event"] = "event"
    ticket_tier: str | None = Field(None, max_length=50)
    seat_labels: list[str] = Field(default_factory=list)


class RestaurantDetails(BaseModel):
    asset_type: Literal["restaurant"] = "restaurant"
    occasion: str | None = Field(None, max_length=100)
    seating_preference: str | None = Field(None, max_length=100)
    dietary_restrictions: list[str] = Field(default_factory=list)


class VehicleDetails(BaseModel):
    asset_type: Literal["vehicle"] = "vehicle"
    pickup_location: str = Field(..., min_length=1, max_length=300)
    return_location: str | None = Field(None, max_length=300)
    driver_license_number: str | None = Field(None, max_length=50)
    driver_age: int | None = Field(None, ge=18, le=99)
    with_driver: bool = False


class AccommodationDetails(BaseModel):
    asset_type: Literal["accommodation"] = "accommodation"
    adults: int = Field(1, ge=1)
    children: int = Field(0, ge=0)
    room_preference: str | None = Field(None, max_length=200)


class PackageDetails(BaseModel):
    asset_type: Literal["package"] = "package"
    component_asset_ids: list[UUID] = Field(default_factory=list)
    notes: str | None = Field(None, max_length=1000)


AssetDetails = Annotated[
    Union[
        ActivityDetails,
        EventDetails,
        RestaurantDetails,
        VehicleDetails,
        AccommodationDetails,
        PackageDetails,
    ],
    Field(discriminator="asset_type"),
]

from typing import List

from pydantic import BaseModel


class MatchedVehicleResponse(BaseModel):
    id: int
    title: str
    slug: str
    price: int
    year: int
    mileage: int
    brand: str
    model: str
    match_score: int
    match_reasons: List[str]

    class Config:
        from_attributes = True


class MatchResponse(BaseModel):
    vehicles: List[MatchedVehicleResponse]


class VehiclePublishedRequest(BaseModel):
    vehicle_id: int


class VehiclePublishedResponse(BaseModel):
    matches_found: int
    notified: int

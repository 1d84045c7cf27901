"""Approximate map pins for property records.

Coordinates come from a small city table matched by substring on the
property location, plus a little jitter so pins in the same city do not
overlap. This is a display approximation, not geocoding.
"""
from __future__ import annotations

import random
from typing import List, Optional, Tuple

from .models import FinancialRecord, MapLocation

# 上から順に照合する（区・市の細かいものを先に。「東京都」は「京都」より先）
CITY_COORDINATES: Tuple[Tuple[str, float, float], ...] = (
    ("新宿", 35.69, 139.70),
    ("東京", 35.68, 139.76),
    ("横浜", 35.45, 139.64),
    ("大阪市北区", 34.70, 135.50),
    ("大阪", 34.69, 135.50),
    ("京都", 35.01, 135.75),
    ("神戸", 34.69, 135.20),
    ("大津", 35.00, 135.86),
    ("名古屋", 35.18, 136.91),
    ("福岡", 33.59, 130.40),
    ("札幌", 43.06, 141.35),
)

JITTER_DEGREES = 0.01

# 不明な所在地は関西圏の周辺にランダム配置
FALLBACK_LAT = 35.0
FALLBACK_LNG = 135.5
FALLBACK_SPAN = 0.5


def _coordinates_for(location: str, rng: random.Random) -> Tuple[float, float]:
    for city, lat, lng in CITY_COORDINATES:
        if city in location:
            return (
                lat + rng.uniform(-JITTER_DEGREES, JITTER_DEGREES),
                lng + rng.uniform(-JITTER_DEGREES, JITTER_DEGREES),
            )
    return (
        FALLBACK_LAT + rng.random() * FALLBACK_SPAN,
        FALLBACK_LNG + rng.random() * FALLBACK_SPAN,
    )


def build_map_locations(record: FinancialRecord, rng: Optional[random.Random] = None) -> List[MapLocation]:
    rng = rng or random.Random()
    locations: List[MapLocation] = []
    for prop in record.properties:
        lat, lng = _coordinates_for(prop.location, rng)
        locations.append(
            MapLocation(
                id=prop.id,
                name=prop.name,
                lat=round(lat, 6),
                lng=round(lng, 6),
                value=prop.market_value,
            )
        )
    return locations

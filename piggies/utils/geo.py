# piggies/utils/geo.py

from __future__ import annotations

import math
from typing import Optional

EARTH_RADIUS_MILES = 3959.0


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Расстояние по большому кругу между двумя точками, в милях."""
    p1 = math.radians(lat1)
    p2 = math.radians(lat2)
    dp = math.radians(lat2 - lat1)
    dl = math.radians(lon2 - lon1)
    a = math.sin(dp / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2) ** 2
    return 2 * EARTH_RADIUS_MILES * math.asin(min(1.0, math.sqrt(a)))


def distance_or_none(
    lat1: Optional[float], lon1: Optional[float],
    lat2: Optional[float], lon2: Optional[float],
) -> Optional[float]:
    # нет координат у любой из сторон -> расстояние неизвестно
    if lat1 is None or lon1 is None or lat2 is None or lon2 is None:
        return None
    return haversine_miles(lat1, lon1, lat2, lon2)

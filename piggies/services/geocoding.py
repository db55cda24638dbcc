# piggies/services/geocoding.py
# Геокодинг адреса места через Nominatim-совместимый HTTP API.

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

import httpx

from piggies.services.errors import ValidationFailed

log = logging.getLogger(__name__)

GEOCODER_URL = os.getenv("GEOCODER_URL", "https://nominatim.openstreetmap.org/search")
GEOCODER_USER_AGENT = os.getenv("GEOCODER_USER_AGENT", "piggies-backend")
GEOCODER_TIMEOUT = float(os.getenv("GEOCODER_TIMEOUT", "5"))


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float
    display_name: Optional[str] = None


class GeocodingError(Exception):
    """Сервис недоступен или адрес не найден."""


class Geocoder:
    def geocode(self, query: str) -> GeoPoint:
        raise NotImplementedError


class NominatimGeocoder(Geocoder):
    def __init__(self, url: str = GEOCODER_URL, user_agent: str = GEOCODER_USER_AGENT,
                 timeout: float = GEOCODER_TIMEOUT):
        self.url = url
        self.user_agent = user_agent
        self.timeout = timeout

    def geocode(self, query: str) -> GeoPoint:
        try:
            resp = httpx.get(
                self.url,
                params={"q": query, "format": "json", "limit": 1},
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            rows = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise GeocodingError(str(e)) from e

        if not rows:
            raise GeocodingError(f"no results for {query!r}")
        top = rows[0]
        try:
            return GeoPoint(float(top["lat"]), float(top["lon"]), top.get("display_name"))
        except (KeyError, TypeError, ValueError) as e:
            raise GeocodingError(f"malformed geocoder response: {top!r}") from e


_geocoder: Optional[Geocoder] = None


def get_geocoder() -> Geocoder:
    global _geocoder
    if _geocoder is None:
        _geocoder = NominatimGeocoder()
    return _geocoder


def set_geocoder(geocoder: Optional[Geocoder]) -> None:
    global _geocoder
    _geocoder = geocoder


def geocode_address(query: str) -> GeoPoint:
    """
    Адрес -> координаты. Любой сбой сервиса - это пользовательская ошибка
    "address_not_found", а не 5xx.
    """
    try:
        return get_geocoder().geocode(query)
    except GeocodingError:
        log.warning("geocoding failed for %r", query, exc_info=True)
        raise ValidationFailed("address_not_found", "Could not find that address") from None

"""
REVERSE GEOCODING (Nominatim)

Purpose:
- Turn a picked map point into a display address
- Never fail the caller: any problem degrades to a synthesized label

Requirements:
• Identify the app with a User-Agent (Nominatim policy)
• Timeout protection
• Log all failures
"""

import logging

import requests

from shipexpress import config

logger = logging.getLogger(__name__)


def fallback_address(lat: float, lng: float) -> str:
    return f"Location at {lat:.4f}, {lng:.4f}"


def reverse_geocode(lat: float, lng: float, session=None) -> str:
    """
    Convert latitude & longitude to a display address.

    Always returns a string; on any failure the result is
    "Location at <lat>, <lng>" with four decimals.
    """
    http = session or requests
    params = {
        "format": "json",
        "lat": lat,
        "lon": lng,
    }
    headers = {"User-Agent": config.GEOCODER_USER_AGENT}

    try:
        response = http.get(
            config.NOMINATIM_URL,
            params=params,
            headers=headers,
            timeout=config.API_TIMEOUT,
        )
        response.raise_for_status()
        address = response.json().get("display_name")
    except requests.exceptions.Timeout:
        logger.error(f"Geocoding timeout for ({lat}, {lng})")
        return fallback_address(lat, lng)
    except (requests.exceptions.RequestException, ValueError, AttributeError) as e:
        logger.error(f"Geocoding error for ({lat}, {lng}): {str(e)}")
        return fallback_address(lat, lng)

    if not address:
        logger.warning(f"No address found for ({lat}, {lng})")
        return fallback_address(lat, lng)

    return address

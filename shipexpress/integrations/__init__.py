"""
Integrations Package

External service integrations (reverse geocoding).
"""

from shipexpress.integrations.geocoding import reverse_geocode, fallback_address

__all__ = [
    'reverse_geocode',
    'fallback_address',
]

"""Global constants for the core package.

This module contains shared constants used across the application core.
"""

from typing import Final

# HTTP Client Constants
HTTP_CONNECTION_LIMIT: Final[int] = 10
HTTP_TIMEOUT_CONNECT: Final[float] = 10.0
HTTP_TIMEOUT_SOCK_READ: Final[float] = 60.0
HTTP_TIMEOUT_TOTAL: Final[float] = 120.0

# Geodesy
EARTH_RADIUS_M: Final[float] = 6_371_000.0
METERS_PER_DEGREE_LAT: Final[float] = 111_320.0
MIN_LON_SCALE: Final[float] = 0.0001

# Distance Conversion
METERS_PER_KILOMETER: Final[float] = 1000.0
METERS_PER_MILE: Final[float] = 1609.34

"""
calsync - external calendar synchronization.

Mirrors bookable domain entities into Google Calendar and serves them as a
token-gated iCalendar feed.
"""

__version__ = "0.1.0"

"""
Domain services built on the document store client.
"""

from coachstore.services.sports import SportsService, validate_sport_data

__all__ = ["SportsService", "validate_sport_data"]

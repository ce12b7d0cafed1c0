"""
Data Sources Package
Pure API clients for external data sources
"""

from . import geocoding
from . import places_api
from . import weather_api
from . import ai_client
from . import auth_client
from . import database

__all__ = ['geocoding', 'places_api', 'weather_api', 'ai_client', 'auth_client', 'database']

from .venues import VenuesRepository, filter_fresh
from . import models

__all__ = ["VenuesRepository", "filter_fresh", "models"]

"""
Repository layer for the visit scheduling feature.
"""

from .visit_repository import VisitRepository, VisitTransitionError

__all__ = ["VisitRepository", "VisitTransitionError"]

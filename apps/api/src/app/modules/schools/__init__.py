"""
Schools module - School tenant and branch management.
"""

from app.modules.schools.models import Branch, School, SchoolStatus
from app.modules.schools.repository import SchoolRepository

__all__ = ["School", "Branch", "SchoolStatus", "SchoolRepository"]

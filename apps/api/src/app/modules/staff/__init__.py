"""
Staff module - Staff records and school-unique staff numbers.
"""

from app.modules.staff.models import Staff, StaffSequence

__all__ = ["Staff", "StaffSequence"]

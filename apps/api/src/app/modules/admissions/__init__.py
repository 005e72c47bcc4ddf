"""
Admissions module - Admission number formats and per-school sequences.

The service, router and jobs are imported from their own modules; only the
codec and model are re-exported here so that the schools and learners
modules can depend on them without import cycles.
"""

from app.modules.admissions.codec import (
    AdmissionFormat,
    AdmissionNumberFormatError,
    ParsedAdmissionNumber,
)
from app.modules.admissions.models import AdmissionSequence

__all__ = [
    "AdmissionFormat",
    "AdmissionNumberFormatError",
    "ParsedAdmissionNumber",
    "AdmissionSequence",
]

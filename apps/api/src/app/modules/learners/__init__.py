"""
Learners module - Enrolled learners and their admission numbers.
"""

from app.modules.learners.models import Learner

__all__ = ["Learner"]

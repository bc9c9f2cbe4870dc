"""
Academics Module

Read-only boundary models for the academic structure (semesters,
divisions, subject allocations, students) that feedback forms refer to.
Managing these records is handled elsewhere.
"""

from .models import Division, Semester, Student, SubjectAllocation

__all__ = ["Division", "Semester", "Student", "SubjectAllocation"]

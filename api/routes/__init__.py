"""
API Routes Package

This package contains route handlers organized by feature:
- students.py: REST endpoints for listing and enrolling students
- attendance.py: REST endpoints for taking and querying attendance

Author: CS-1
"""

from api.routes.students import router as students_router
from api.routes.attendance import router as attendance_router

__all__ = [
    "students_router",
    "attendance_router",
]

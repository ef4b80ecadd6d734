"""
Canonical tree layout, relative to the canonical root.

Conventions:
    users/{id}, students|instructors|admins/{userId}
    courses/{id}, modules/{id}, evaluations/{id}, feedback/{id}
    enrollments/byCourse/{courseId}/{userId}
    enrollments/byUser/{userId}/{courseId}
    progress/{userId}/{courseId}
"""
from __future__ import annotations

USERS = "users"
STUDENTS = "students"
INSTRUCTORS = "instructors"
ADMINS = "admins"
COURSES = "courses"
MODULES = "modules"
EVALUATIONS = "evaluations"
ENROLLMENTS = "enrollments"
ENROLLMENTS_BY_COURSE = "enrollments/byCourse"
ENROLLMENTS_BY_USER = "enrollments/byUser"
PROGRESS = "progress"
FEEDBACK = "feedback"

SATELLITE_BY_ROLE = {
    "student": STUDENTS,
    "instructor": INSTRUCTORS,
    "admin": ADMINS,
}

# Canonical node each kind is written under.
KIND_ROOTS = {
    "user": USERS,
    "course": COURSES,
    "module": MODULES,
    "evaluation": EVALUATIONS,
    "enrollment": ENROLLMENTS,
    "progress": PROGRESS,
    "feedback": FEEDBACK,
}


__all__ = [
    "USERS",
    "STUDENTS",
    "INSTRUCTORS",
    "ADMINS",
    "COURSES",
    "MODULES",
    "EVALUATIONS",
    "ENROLLMENTS",
    "ENROLLMENTS_BY_COURSE",
    "ENROLLMENTS_BY_USER",
    "PROGRESS",
    "FEEDBACK",
    "SATELLITE_BY_ROLE",
    "KIND_ROOTS",
]

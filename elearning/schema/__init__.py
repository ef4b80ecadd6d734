"""Canonical schema for the e-learning tree: entity tables, standardizer and validator."""

from .entities import (
    ENROLLMENT_STATUSES,
    EVALUATION_TYPES,
    KINDS,
    LEVELS,
    RESOURCE_TYPES,
    ROLES,
)
from .standardize import membership_map, module_entries, standardize, utc_now_iso
from .validation import ValidationResult, validate

__all__ = [
    "ENROLLMENT_STATUSES",
    "EVALUATION_TYPES",
    "KINDS",
    "LEVELS",
    "RESOURCE_TYPES",
    "ROLES",
    "ValidationResult",
    "membership_map",
    "module_entries",
    "standardize",
    "utc_now_iso",
    "validate",
]

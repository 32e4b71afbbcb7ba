"""
Risk management components.

Provides the signal safety gate and position sizing utilities.
"""

from .safety_engine import (
    SafetyEngine,
    SafetyCheck,
    SafetyContext,
    SafetyValidationResult,
    aggregate_validity,
)

__all__ = [
    "SafetyEngine",
    "SafetyCheck",
    "SafetyContext",
    "SafetyValidationResult",
    "aggregate_validity",
]

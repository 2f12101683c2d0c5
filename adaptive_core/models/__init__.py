"""
Models package for the adaptive assessment core.
"""
from .base import Base, SessionLocal, build_engine, engine
from .models import (
    AssessmentResultRecord,
    BlueprintRecord,
    CalibrationStatRecord,
    ItemRecord,
)

__all__ = [
    "Base",
    "SessionLocal",
    "build_engine",
    "engine",
    "AssessmentResultRecord",
    "BlueprintRecord",
    "CalibrationStatRecord",
    "ItemRecord",
]

"""
SQLAlchemy Models for the Coverage Engine.

This module exports all database models so they register on Base.metadata.
"""

from coverage_engine.models.base import Base, SoftDeleteModel, TimeStampedModel, UUIDModel
from coverage_engine.models.insurance import InsurancePlan, InsuranceTariff, MedicalService

__all__ = [
    "Base",
    "SoftDeleteModel",
    "TimeStampedModel",
    "UUIDModel",
    "InsurancePlan",
    "InsuranceTariff",
    "MedicalService",
]

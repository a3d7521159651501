"""
Insurance Plan, Medical Service and Tariff Models.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coverage_engine.core.enums import CoverageType
from coverage_engine.models.base import Base, SoftDeleteModel, TimeStampedModel, UUIDModel

MONEY = Numeric(18, 2)
PERCENT = Numeric(5, 2)
COVERAGE_TYPE = SAEnum(
    CoverageType,
    name="coverage_type",
    values_callable=lambda e: [m.value for m in e],
)


class InsurancePlan(Base, UUIDModel, TimeStampedModel, SoftDeleteModel):
    """Insurance plan with the deductible and coverage rate the calculations read."""

    __tablename__ = "insurance_plans"

    code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        comment="Plan code",
    )
    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Plan name",
    )
    coverage_type: Mapped[CoverageType] = mapped_column(
        COVERAGE_TYPE,
        nullable=False,
        default=CoverageType.PRIMARY,
    )
    coverage_percent: Mapped[Decimal] = mapped_column(
        PERCENT,
        nullable=False,
        comment="Share of the coverable amount paid by the plan",
    )
    deductible: Mapped[Decimal] = mapped_column(
        MONEY,
        nullable=False,
        default=Decimal("0"),
        comment="Amount subtracted before coverage applies",
    )
    valid_from: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    valid_to: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    tariffs: Mapped[list["InsuranceTariff"]] = relationship(
        back_populates="insurance_plan",
        foreign_keys="InsuranceTariff.insurance_plan_id",
    )


class MedicalService(Base, UUIDModel, TimeStampedModel, SoftDeleteModel):
    """Billable clinic service."""

    __tablename__ = "medical_services"

    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    price: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)


class InsuranceTariff(Base, UUIDModel, TimeStampedModel, SoftDeleteModel):
    """
    Price split of one service under one plan.

    Supplementary tariffs also reference the primary plan they stack on;
    the partial unique index enforces one live tariff per
    (service, primary plan, plan) triple.
    """

    __tablename__ = "insurance_tariffs"

    service_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("medical_services.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    insurance_plan_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("insurance_plans.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    primary_plan_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("insurance_plans.id", ondelete="RESTRICT"),
        nullable=True,
    )

    tariff_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    patient_share: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    insurer_share: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    coverage_type: Mapped[CoverageType] = mapped_column(
        COVERAGE_TYPE,
        nullable=False,
        default=CoverageType.PRIMARY,
    )
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    supplementary_coverage_percent: Mapped[Optional[Decimal]] = mapped_column(
        PERCENT, nullable=True
    )
    supplementary_max_payment: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    valid_from: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    valid_to: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    insurance_plan: Mapped[InsurancePlan] = relationship(
        back_populates="tariffs",
        foreign_keys=[insurance_plan_id],
    )

    __table_args__ = (
        Index(
            "uq_insurance_tariffs_combination",
            "service_id",
            "primary_plan_id",
            "insurance_plan_id",
            unique=True,
            postgresql_where=text("is_deleted = false"),
            sqlite_where=text("is_deleted = 0"),
        ),
        Index("ix_insurance_tariffs_plan_active", "insurance_plan_id", "is_active"),
    )

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Query

from .. import reports
from ..dependencies import Database
from ..models.stats import Beneficiary, DashboardStats, ImpactReport, MonthlyReport
from .auth import AdminUser

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("/dashboard", response_model=DashboardStats)
async def dashboard(_: AdminUser, database: Database) -> DashboardStats:
    return DashboardStats(**await reports.dashboard_counts(database))


@router.get("/impact-report", response_model=ImpactReport)
async def impact_report(database: Database) -> ImpactReport:
    return ImpactReport(**await reports.impact_report(database))


@router.get("/beneficiaries", response_model=List[Beneficiary])
async def beneficiaries(database: Database) -> List[Beneficiary]:
    return [Beneficiary(**row) for row in await reports.beneficiaries(database)]


@router.get("/monthly", response_model=MonthlyReport)
async def monthly(_: AdminUser, database: Database, months: int = Query(default=12, ge=1, le=60)) -> MonthlyReport:
    return MonthlyReport(months=await reports.monthly_report(database, months))

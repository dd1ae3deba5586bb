from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class PendingCounts(BaseModel):
    donations: int
    requests: int


class DashboardStats(BaseModel):
    pending: PendingCounts
    inventory_by_status: dict[str, int]


class ImpactReport(BaseModel):
    total_donations: int
    computers_donated: int
    computers_in_inventory: int
    computers_ready: int
    computers_delivered: int
    schools_served: int
    requests_fulfilled: int
    requests_open: int


class Beneficiary(BaseModel):
    request_id: str
    school_name: str
    location: Optional[str] = None
    computers_received: int
    date_received: Optional[datetime] = None


class MonthBucket(BaseModel):
    month: str
    donations: int
    computers_donated: int
    computers_delivered: int


class MonthlyReport(BaseModel):
    months: List[MonthBucket]

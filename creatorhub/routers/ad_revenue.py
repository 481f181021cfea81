"""Ad network revenue reports and their windowed metrics.

Reports for the same (date, source) merge into one row; CTR and RPM are
recomputed from the merged counters.
"""

from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from .. import schemas
from ..deps import Settings, get_ad_revenue_service, get_current_creator, get_settings, require_admin
from ..models import AdSourceEnum, User
from ..services.ad_revenue_service import AdRevenueService
from ..stores.ad_revenue import AdRevenueFilters

router = APIRouter(
    prefix="/ad-revenue",
    tags=["Ad Revenue"],
    responses={
        401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
        403: {"model": schemas.ErrorResponse, "description": "Forbidden"},
        422: {"model": schemas.ErrorResponse, "description": "Validation error"},
    },
)


@router.post("", response_model=schemas.AdRevenueOut, status_code=status.HTTP_201_CREATED)
def record_revenue(
    payload: schemas.AdRevenueCreate,
    user: User = Depends(get_current_creator),
    service: AdRevenueService = Depends(get_ad_revenue_service),
):
    return service.record_revenue(
        user.id, payload.date, payload.source, payload.revenue, payload.impressions, payload.clicks
    )


@router.get("", response_model=schemas.AdRevenueListResponse)
def list_revenue(
    source: Optional[AdSourceEnum] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    min_revenue: Optional[int] = Query(None, description="Cents"),
    limit: int = Query(50),
    offset: int = Query(0),
    user: User = Depends(get_current_creator),
    service: AdRevenueService = Depends(get_ad_revenue_service),
):
    filters = AdRevenueFilters(source=source, start_date=start_date, end_date=end_date, min_revenue=min_revenue)
    items, total = service.list_records(user.id, filters, limit=limit, offset=offset)
    return schemas.AdRevenueListResponse(items=items, total=total)


@router.get("/metrics", response_model=schemas.RevenueWindowMetricsOut)
def windowed_metrics(
    days: int = Query(30),
    user: User = Depends(get_current_creator),
    service: AdRevenueService = Depends(get_ad_revenue_service),
):
    return service.windowed_metrics(user.id, days)


@router.get("/monthly", response_model=List[schemas.MonthlySourceBreakdownOut])
def monthly_breakdown(
    months: int = Query(12),
    user: User = Depends(get_current_creator),
    service: AdRevenueService = Depends(get_ad_revenue_service),
):
    return service.monthly_breakdown(user.id, months)


@router.get("/monthly/{year}/{month}", response_model=schemas.MonthlyRevenueTotalOut)
def monthly_total(
    year: int,
    month: int,
    user: User = Depends(get_current_creator),
    service: AdRevenueService = Depends(get_ad_revenue_service),
):
    revenue = service.monthly_revenue(user.id, year, month)
    return schemas.MonthlyRevenueTotalOut(year=year, month=month, revenue=revenue)


@router.get("/daily", response_model=List[schemas.DailyRevenueOut])
def daily_revenue(
    days: int = Query(30),
    high_performance_only: bool = Query(False),
    user: User = Depends(get_current_creator),
    service: AdRevenueService = Depends(get_ad_revenue_service),
):
    if high_performance_only:
        return service.high_performance_days(user.id, days)
    return service.daily_revenue(user.id, days)


@router.get("/top-days", response_model=List[schemas.DailyRevenueOut])
def top_performing_days(
    limit: int = Query(10),
    days: int = Query(30),
    user: User = Depends(get_current_creator),
    service: AdRevenueService = Depends(get_ad_revenue_service),
):
    return service.top_performing_days(user.id, limit, days)


@router.get("/sources", response_model=List[schemas.SourceComparisonOut])
def source_comparison(
    days: int = Query(30),
    user: User = Depends(get_current_creator),
    service: AdRevenueService = Depends(get_ad_revenue_service),
):
    return service.source_comparison(user.id, days)


@router.post("/purge", response_model=schemas.PurgeResultOut)
def purge_old_records(
    days_to_keep: Optional[int] = Query(None, description="Defaults to AD_REVENUE_RETENTION_DAYS"),
    user: User = Depends(require_admin),
    settings: Settings = Depends(get_settings),
    service: AdRevenueService = Depends(get_ad_revenue_service),
):
    """Retention purge across all creators (cron hook, admin only)."""
    days_to_keep = days_to_keep or settings.AD_REVENUE_RETENTION_DAYS
    deleted = service.purge_old_records(days_to_keep)
    return schemas.PurgeResultOut(deleted=deleted, days_to_keep=days_to_keep)


@router.get("/{record_id}", response_model=schemas.AdRevenueOut)
def get_record(
    record_id: UUID,
    user: User = Depends(get_current_creator),
    service: AdRevenueService = Depends(get_ad_revenue_service),
):
    return service.get_record(record_id, user.id)


@router.patch("/{record_id}", response_model=schemas.AdRevenueOut)
def update_record(
    record_id: UUID,
    payload: schemas.AdRevenueUpdate,
    user: User = Depends(get_current_creator),
    service: AdRevenueService = Depends(get_ad_revenue_service),
):
    return service.update_record(record_id, user.id, **payload.model_dump(exclude_unset=True))


@router.delete("/{record_id}", response_model=schemas.SuccessResponse)
def delete_record(
    record_id: UUID,
    user: User = Depends(get_current_creator),
    service: AdRevenueService = Depends(get_ad_revenue_service),
):
    service.delete_record(record_id, user.id)
    return schemas.SuccessResponse(detail="Revenue record deleted")

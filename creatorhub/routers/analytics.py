"""
Creator Analytics Router
========================

WHAT: Dashboard cards and the combined report for the signed-in creator
WHY: The dashboard loads overview, revenue, traffic, engagement and content
     panels; each card has its own endpoint so panels refresh
     independently, and /report returns them all in one request.

Query params:
    period      7d | 30d | 90d | 1y | all
    comparison  7d | 30d | 90d | 1y  (optional; enables growth figures)

REFERENCES:
- creatorhub/services/analytics_service.py (aggregation and growth modes)
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from .. import schemas
from ..deps import get_analytics_service, get_current_creator
from ..models import User
from ..services.analytics_service import AnalyticsService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/analytics",
    tags=["Analytics"],
    responses={
        401: {"model": schemas.ErrorResponse, "description": "Unauthorized"},
        403: {"model": schemas.ErrorResponse, "description": "Forbidden"},
        422: {"model": schemas.ErrorResponse, "description": "Invalid period or comparison"},
    },
)

PERIOD_DESCRIPTION = "Current window: 7d, 30d, 90d, 1y or all"
COMPARISON_DESCRIPTION = "Comparison window for growth: 7d, 30d, 90d or 1y"


@router.get("/overview", response_model=schemas.DashboardOverviewOut)
def dashboard_overview(
    period: str = Query("30d", description=PERIOD_DESCRIPTION),
    comparison: Optional[str] = Query(None, description=COMPARISON_DESCRIPTION),
    user: User = Depends(get_current_creator),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return service.dashboard_overview(user.id, period, comparison)


@router.get("/revenue", response_model=schemas.RevenueAnalyticsOut)
def revenue_analytics(
    period: str = Query("30d", description=PERIOD_DESCRIPTION),
    user: User = Depends(get_current_creator),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return service.revenue_analytics(user.id, period)


@router.get("/revenue/monthly", response_model=List[schemas.MonthlyRevenuePointOut])
def monthly_revenue_trend(
    months: int = Query(12),
    user: User = Depends(get_current_creator),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return service.monthly_revenue_trend(user.id, months)


@router.get("/revenue/top-articles", response_model=List[schemas.RevenueArticleOut])
def top_revenue_articles(
    period: str = Query("30d", description=PERIOD_DESCRIPTION),
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_creator),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return service.top_revenue_articles(user.id, period, limit)


@router.get("/traffic", response_model=schemas.TrafficAnalyticsOut)
def traffic_analytics(
    period: str = Query("30d", description=PERIOD_DESCRIPTION),
    user: User = Depends(get_current_creator),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return service.traffic_analytics(user.id, period)


@router.get("/engagement", response_model=schemas.EngagementAnalyticsOut)
def engagement_analytics(
    period: str = Query("30d", description=PERIOD_DESCRIPTION),
    user: User = Depends(get_current_creator),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return service.engagement_analytics(user.id, period)


@router.get("/content", response_model=schemas.ContentPerformanceOut)
def content_performance(
    period: str = Query("30d", description=PERIOD_DESCRIPTION),
    user: User = Depends(get_current_creator),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return service.content_performance(user.id, period)


@router.get("/growth", response_model=schemas.GrowthMetricsOut)
def growth_metrics(
    period: str = Query("30d", description=PERIOD_DESCRIPTION),
    comparison: str = Query("30d", description=COMPARISON_DESCRIPTION),
    user: User = Depends(get_current_creator),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return service.growth_metrics(user.id, period, comparison)


@router.get("/compare", response_model=schemas.MetricComparisonOut)
def compare_metric(
    metric: str = Query(..., description="page_views, revenue or subscribers"),
    period: str = Query("30d", description=PERIOD_DESCRIPTION),
    comparison: str = Query("30d", description=COMPARISON_DESCRIPTION),
    user: User = Depends(get_current_creator),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return service.compare_metric(user.id, metric, period, comparison)


@router.get("/report", response_model=schemas.AnalyticsReportOut)
def full_report(
    period: str = Query("30d", description=PERIOD_DESCRIPTION),
    comparison: Optional[str] = Query(None, description=COMPARISON_DESCRIPTION),
    user: User = Depends(get_current_creator),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return service.full_report(user.id, period, comparison)

"""
Services for handling reports business logic.

The monthly report is an income statement computed from the month's COMPLETED sales,
its expenses and the clinic's financial settings. The revenue goal is worked out
backwards from the net profit target:

    target margin    = (profit target + fixed expenses) / (1 - innovation reserve %)
    required revenue = target margin / contribution margin %
"""
import calendar
import logging
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional

from clinic_api.common.cache import (
    get_cache, set_cache, generate_cache_key, report_cache_prefix, DEFAULT_CACHE_TTL, REPORT_CACHE_TTL
)
from clinic_api.common.dates import now_local, parse_flexible_date, parse_iso_date
from clinic_api.finance.schemas import ClinicSettings, CostType, ExpenseInDB
from clinic_api.finance.services import get_clinic_settings, get_expenses
from clinic_api.patients.services import get_patient_names
from clinic_api.sales.categories import TherapeuticClass
from clinic_api.sales.combos import ComboTier
from clinic_api.sales.pricing import PaymentMethod
from clinic_api.sales.schemas import SaleInDB
from clinic_api.sales.services import get_completed_sales
from clinic_api.reports.schemas import (
    SummaryResponse, DateRangeSchema, DailyPoint, MonthlyReport, RankingType, PatientRank, ProductRank, RankingsResponse
)

logger = logging.getLogger(__name__)

# Contribution margin assumed while a month has no revenue yet
DEFAULT_MARGIN_PCT = 30.0


def is_business_day(day: date, holidays: Iterable[str]) -> bool:
    """Weekdays that are not holidays."""
    if day.weekday() >= 5:
        return False
    return day.isoformat() not in set(holidays)


def count_business_days(year: int, month: int, holidays: Iterable[str], until_day: Optional[int] = None) -> int:
    """Business days of a month, optionally only up to (and including) until_day."""
    holidays = set(holidays)
    last_day = calendar.monthrange(year, month)[1]
    if until_day is not None:
        last_day = min(last_day, until_day)
    return sum(1 for d in range(1, last_day + 1) if is_business_day(date(year, month, d), holidays))


def elapsed_business_days(year: int, month: int, holidays: Iterable[str], today: date) -> int:
    """Business days already gone in the month: all of them for past months, none for future ones."""
    if (today.year, today.month) == (year, month):
        return count_business_days(year, month, holidays, until_day=today.day)
    if (today.year, today.month) > (year, month):
        return count_business_days(year, month, holidays)
    return 0


def _month_bounds(year: int, month: int):
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def build_daily_series(year: int, month: int, realized_by_day: dict, target: float,
                       holidays: Iterable[str], today: date) -> List[DailyPoint]:
    """
    Day by day chart of the month. The dynamic target of a business day is what is
    still missing from the goal spread over the business days left, that day included.
    """
    holidays = set(holidays)
    days_in_month = calendar.monthrange(year, month)[1]
    current_day = today.day if (today.year, today.month) == (year, month) else days_in_month
    total_business_days = count_business_days(year, month, holidays)
    daily_target = target / total_business_days if total_business_days else 0.0

    flags = [is_business_day(date(year, month, d), holidays) for d in range(1, days_in_month + 1)]

    points = []
    cumulative_realized = 0.0
    cumulative_target = 0.0
    for day in range(1, days_in_month + 1):
        business = flags[day - 1]
        remaining_business_days = sum(flags[day - 1:])
        dynamic = 0.0
        if business and remaining_business_days > 0:
            dynamic = max(0.0, target - cumulative_realized) / remaining_business_days
        if business:
            cumulative_target += daily_target

        realized = realized_by_day.get(day, 0.0) if day <= current_day else 0.0
        cumulative_realized += realized

        points.append(DailyPoint(
            day=day,
            date=date(year, month, day).isoformat(),
            isBusinessDay=business,
            realized=realized,
            dynamicTarget=dynamic,
            cumulativeRealized=cumulative_realized,
            cumulativeTarget=min(cumulative_target, target),
        ))
    return points


def build_income_statement(year: int, month: int, sales: List[SaleInDB], expenses: List[ExpenseInDB],
                           settings: ClinicSettings, today: date) -> MonthlyReport:
    """
    Compute the monthly report from already loaded data. Pure, no I/O.
    """
    gross_revenue = sum(sale.totals.finalPrice for sale in sales)
    supply_cost = sum(sale.totals.costTotal for sale in sales)
    credit_revenue = sum(sale.totals.finalPrice for sale in sales if sale.paymentMethod == PaymentMethod.CREDIT)

    taxes = gross_revenue * (settings.taxRatePct / 100)
    card_fees = credit_revenue * (settings.cardFeePct / 100)
    total_deductions = taxes + card_fees
    net_revenue = gross_revenue - total_deductions

    contribution_margin = net_revenue - supply_cost
    contribution_margin_pct = (
        contribution_margin / gross_revenue * 100 if gross_revenue > 0 else DEFAULT_MARGIN_PCT
    )

    fixed_expenses = sum(e.amount for e in expenses if e.costType == CostType.FIXED)
    variable_expenses = sum(e.amount for e in expenses if e.costType == CostType.VARIABLE)

    reserve_pct = settings.innovationReservePct
    innovation_reserve = max(0.0, contribution_margin) * (reserve_pct / 100)
    ebitda = contribution_margin - fixed_expenses - variable_expenses - innovation_reserve

    target = settings.monthlyNetProfitTarget
    target_margin = (target + fixed_expenses) / (1 - reserve_pct / 100)
    margin_rate = contribution_margin_pct / 100 if contribution_margin_pct > 0 else DEFAULT_MARGIN_PCT / 100
    required_revenue = target_margin / margin_rate

    business_days = count_business_days(year, month, settings.holidays)
    elapsed = elapsed_business_days(year, month, settings.holidays, today)

    realized_by_day = defaultdict(float)
    for sale in sales:
        sale_day = parse_iso_date(sale.saleDate)
        if sale_day is not None:
            realized_by_day[sale_day.day] += sale.totals.finalPrice

    realized = gross_revenue
    projected = realized * business_days / elapsed if elapsed > 0 else 0.0

    return MonthlyReport(
        year=year,
        month=month,
        grossRevenue=gross_revenue,
        supplyCost=supply_cost,
        taxes=taxes,
        cardFees=card_fees,
        totalDeductions=total_deductions,
        netRevenue=net_revenue,
        contributionMargin=contribution_margin,
        contributionMarginPct=contribution_margin_pct,
        fixedExpenses=fixed_expenses,
        variableExpenses=variable_expenses,
        innovationReservePct=reserve_pct,
        innovationReserve=innovation_reserve,
        ebitda=ebitda,
        netProfitTarget=target,
        requiredRevenue=required_revenue,
        businessDays=business_days,
        elapsedBusinessDays=elapsed,
        realizedToDate=realized,
        gap=required_revenue - realized,
        percentRealized=realized / required_revenue * 100 if required_revenue > 0 else 0.0,
        projectedClosing=projected,
        projectedPercent=projected / required_revenue * 100 if required_revenue > 0 else 0.0,
        daily=build_daily_series(year, month, realized_by_day, required_revenue, settings.holidays, today),
    )


async def get_monthly_report(clinic_id: str, year: int, month: int, today: Optional[date] = None) -> MonthlyReport:
    """
    Income statement of a month, cached per clinic, month and day of computation.
    """
    today = today or now_local().date()
    cache_key = generate_cache_key(
        f"{report_cache_prefix(clinic_id)}:monthly",
        {"year": year, "month": month, "asOf": today.isoformat()}
    )
    cached = await get_cache(cache_key)
    if cached:
        logger.debug("Monthly report cache hit: %s", cache_key)
        return MonthlyReport(**cached)

    first_day, last_day = _month_bounds(year, month)
    sales = await get_completed_sales(clinic_id, first_day.isoformat(), last_day.isoformat())
    expenses = await get_expenses(clinic_id, year=year, month=month)
    settings = await get_clinic_settings(clinic_id)

    report = build_income_statement(year, month, sales, expenses, settings, today)
    await set_cache(cache_key, report.model_dump(mode='json'), ttl=REPORT_CACHE_TTL)
    return report


async def get_sales_summary(clinic_id: str, start_date: Optional[str] = None,
                            end_date: Optional[str] = None) -> SummaryResponse:
    """
    Summary of COMPLETED sales in a date range. Without dates it covers today
    (clinic timezone); with only a start date it runs until today.
    """
    now = now_local()
    start = parse_flexible_date(start_date) if start_date else None
    end = parse_flexible_date(end_date, is_end_date=True) if end_date else None
    start_str = start.date().isoformat() if start else now.date().isoformat()
    end_str = end.date().isoformat() if end else max(start_str, now.date().isoformat())

    cache_key = generate_cache_key(f"{report_cache_prefix(clinic_id)}:summary", {"start": start_str, "end": end_str})
    cached = await get_cache(cache_key)
    if cached:
        cached['date'] = now.isoformat()
        return SummaryResponse(**cached)

    sales = await get_completed_sales(clinic_id, start_str, end_str)

    units_by_class = {cls.value: 0 for cls in TherapeuticClass}
    sales_by_tier = {tier.value: 0 for tier in ComboTier}
    patients = set()
    for sale in sales:
        patients.add(sale.patientId)
        sales_by_tier[sale.tier.value] += 1
        for item in sale.items:
            units_by_class[item.canonicalClass.value] += item.quantity

    revenue = sum(sale.totals.finalPrice for sale in sales)
    cost = sum(sale.totals.costTotal for sale in sales)

    summary = SummaryResponse(
        dateRange=DateRangeSchema(start=start_str, end=end_str),
        revenue=revenue,
        cost=cost,
        margin=revenue - cost,
        sales=len(sales),
        patients=len(patients),
        averageTicket=revenue / len(sales) if sales else 0.0,
        unitsByClass=units_by_class,
        salesByTier=sales_by_tier,
        date=now,
    )
    await set_cache(cache_key, summary.model_dump(mode='json'), ttl=DEFAULT_CACHE_TTL)
    return summary


def rank_patients(sales: List[SaleInDB], names: Dict[str, str]) -> List[PatientRank]:
    """Patients by amount spent, biggest first."""
    totals: Dict[str, dict] = {}
    for sale in sales:
        entry = totals.setdefault(sale.patientId, {"total": 0.0, "visits": 0, "lastVisit": None})
        entry["total"] += sale.totals.finalPrice
        entry["visits"] += 1
        if entry["lastVisit"] is None or sale.saleDate > entry["lastVisit"]:
            entry["lastVisit"] = sale.saleDate

    ranking = [
        PatientRank(
            patientId=patient_id,
            name=names.get(patient_id) or "Unidentified patient",
            total=entry["total"],
            visits=entry["visits"],
            averageTicket=entry["total"] / entry["visits"],
            lastVisit=entry["lastVisit"],
        )
        for patient_id, entry in totals.items()
    ]
    ranking.sort(key=lambda rank: (-rank.total, rank.name.lower()))
    return ranking


def rank_products(sales: List[SaleInDB]) -> List[ProductRank]:
    """SKUs by units sold, most sold first."""
    totals: Dict[str, ProductRank] = {}
    for sale in sales:
        for item in sale.items:
            rank = totals.get(item.skuId)
            if rank is None:
                rank = totals[item.skuId] = ProductRank(
                    skuId=item.skuId,
                    productName=item.productName,
                    canonicalClass=item.canonicalClass,
                    quantity=0,
                )
            rank.quantity += item.quantity
            rank.revenue += item.lineTotal

    return sorted(totals.values(), key=lambda rank: (-rank.quantity, -rank.revenue, rank.productName.lower()))


async def get_rankings(clinic_id: str, year: int, month: int, ranking_type: RankingType,
                       limit: Optional[int] = None) -> RankingsResponse:
    """
    Rank the patients or products of a month from its COMPLETED sales.

    Args:
        clinic_id: Clinic of the sales
        year: Year of the month
        month: Month (1-12)
        ranking_type: PATIENTS ranks by amount spent, PRODUCTS by units sold
        limit: Keep only the first `limit` entries

    Returns:
        RankingsResponse with the requested list filled
    """
    cache_key = generate_cache_key(
        f"{report_cache_prefix(clinic_id)}:rankings",
        {"type": ranking_type.value, "year": year, "month": month, "limit": limit}
    )
    cached = await get_cache(cache_key)
    if cached:
        return RankingsResponse(**cached)

    first_day, last_day = _month_bounds(year, month)
    sales = await get_completed_sales(clinic_id, first_day.isoformat(), last_day.isoformat())

    response = RankingsResponse(year=year, month=month, type=ranking_type)
    if ranking_type == RankingType.PATIENTS:
        response.patients = rank_patients(sales, await get_patient_names(clinic_id))[:limit]
    else:
        response.products = rank_products(sales)[:limit]

    await set_cache(cache_key, response.model_dump(mode='json'), ttl=DEFAULT_CACHE_TTL)
    return response

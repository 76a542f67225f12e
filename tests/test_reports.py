"""
Tests for the summary and monthly income statement reports.
"""
from datetime import date
from unittest.mock import AsyncMock, patch

import pytest

from clinic_api.finance.schemas import ClinicSettings, ExpenseInDB, CostType, ExpenseCategory
from clinic_api.reports.services import (
    is_business_day, count_business_days, elapsed_business_days, build_daily_series,
    build_income_statement, get_monthly_report, get_sales_summary, rank_patients, rank_products, get_rankings
)
from clinic_api.reports.schemas import RankingType, RankingsResponse
from clinic_api.sales.categories import TherapeuticClass
from clinic_api.sales.combos import ComboTier
from clinic_api.sales.pricing import SaleTotals
from clinic_api.sales.schemas import SaleInDB, SaleItem, SaleStatus

NO_HOLIDAYS = []


def _sale(sale_id, sale_date, method, final_price, cost, patient="patient1", items=None, tier=ComboTier.NONE):
    return SaleInDB(
        id=sale_id,
        clinicId="clinic123",
        patientId=patient,
        saleDate=sale_date,
        paymentMethod=method,
        items=items or [],
        totals=SaleTotals(grossTotal=final_price, finalPrice=final_price, costTotal=cost),
        tier=tier,
        status=SaleStatus.COMPLETED,
    )


def _expense(expense_id, amount, cost_type):
    return ExpenseInDB(id=expense_id, clinicId="clinic123", description=expense_id, amount=amount,
                       category=ExpenseCategory.OTHER, costType=cost_type, periodMonth=7, periodYear=2025)


SALES = [
    _sale("s1", "2025-07-10", "PIX", 1000, 300),
    _sale("s2", "2025-07-16", "CREDIT", 2000, 700, patient="patient2"),
]
EXPENSES = [
    _expense("rent", 2000, CostType.FIXED),
    _expense("commission", 200, CostType.VARIABLE),
]
SETTINGS = ClinicSettings(taxRatePct=10, cardFeePct=5, innovationReservePct=10,
                          monthlyNetProfitTarget=5000, holidays=NO_HOLIDAYS)


class TestBusinessDays:

    def test_weekends_and_holidays_are_not_business_days(self):
        assert is_business_day(date(2025, 7, 16), NO_HOLIDAYS)
        assert not is_business_day(date(2025, 7, 19), NO_HOLIDAYS)
        assert not is_business_day(date(2025, 12, 25), ["2025-12-25"])

    def test_july_2025(self):
        assert count_business_days(2025, 7, NO_HOLIDAYS) == 23
        assert count_business_days(2025, 7, NO_HOLIDAYS, until_day=16) == 12

    def test_default_holidays_apply(self):
        # 20 weekdays; 2025-11-20 falls on a Thursday, the other two on the weekend
        assert count_business_days(2025, 11, ClinicSettings().holidays) == 19

    def test_elapsed_business_days(self):
        assert elapsed_business_days(2025, 7, NO_HOLIDAYS, date(2025, 7, 16)) == 12
        assert elapsed_business_days(2025, 7, NO_HOLIDAYS, date(2025, 9, 1)) == 23
        assert elapsed_business_days(2025, 7, NO_HOLIDAYS, date(2025, 6, 30)) == 0


class TestIncomeStatement:

    def test_statement_lines(self):
        report = build_income_statement(2025, 7, SALES, EXPENSES, SETTINGS, date(2025, 7, 16))

        assert report.grossRevenue == pytest.approx(3000)
        assert report.supplyCost == pytest.approx(1000)
        assert report.taxes == pytest.approx(300)
        assert report.cardFees == pytest.approx(100)
        assert report.netRevenue == pytest.approx(2600)
        assert report.contributionMargin == pytest.approx(1600)
        assert report.contributionMarginPct == pytest.approx(53.3333, rel=1e-4)
        assert report.innovationReserve == pytest.approx(160)
        assert report.ebitda == pytest.approx(1600 - 2000 - 200 - 160)

    def test_required_revenue_and_projection(self):
        report = build_income_statement(2025, 7, SALES, EXPENSES, SETTINGS, date(2025, 7, 16))

        assert report.requiredRevenue == pytest.approx(14583.333, rel=1e-6)
        assert report.gap == pytest.approx(14583.333 - 3000, rel=1e-6)
        assert report.percentRealized == pytest.approx(3000 / 14583.333 * 100, rel=1e-6)
        assert report.businessDays == 23
        assert report.elapsedBusinessDays == 12
        assert report.projectedClosing == pytest.approx(3000 * 23 / 12)

    def test_month_without_sales_uses_default_margin(self):
        report = build_income_statement(2025, 7, [], EXPENSES, SETTINGS, date(2025, 7, 16))

        assert report.contributionMarginPct == 30
        assert report.requiredRevenue == pytest.approx((5000 + 2000) / 0.9 / 0.3)
        assert report.projectedClosing == 0
        assert report.innovationReserve == 0

    def test_legacy_unpadded_sale_date(self):
        sales = [_sale("s1", "2025-7-1", "PIX", 1000, 300)]

        report = build_income_statement(2025, 7, sales, [], SETTINGS, date(2025, 7, 16))

        assert report.grossRevenue == pytest.approx(1000)
        assert report.daily[0].realized == pytest.approx(1000)

    def test_future_month_has_no_projection(self):
        report = build_income_statement(2025, 7, [], [], SETTINGS, date(2025, 6, 1))

        assert report.elapsedBusinessDays == 0
        assert report.projectedClosing == 0
        assert report.projectedPercent == 0


class TestDailySeries:

    def test_even_target_without_sales(self):
        points = build_daily_series(2025, 7, {}, 2300, NO_HOLIDAYS, date(2025, 8, 1))

        assert len(points) == 31
        assert points[0].dynamicTarget == pytest.approx(100)
        assert points[4].isBusinessDay is False
        assert points[4].dynamicTarget == 0
        assert points[-1].cumulativeTarget == pytest.approx(2300)

    def test_target_adjusts_to_realized_sales(self):
        points = build_daily_series(2025, 7, {1: 1100.0}, 2300, NO_HOLIDAYS, date(2025, 8, 1))

        assert points[0].realized == 1100
        assert points[1].dynamicTarget == pytest.approx(1200 / 22)
        assert points[-1].cumulativeRealized == 1100

    def test_goal_reached(self):
        points = build_daily_series(2025, 7, {1: 5000.0}, 2300, NO_HOLIDAYS, date(2025, 8, 1))

        assert points[1].dynamicTarget == 0

    def test_days_after_today_are_not_realized(self):
        points = build_daily_series(2025, 7, {10: 500.0, 20: 700.0}, 2300, NO_HOLIDAYS, date(2025, 7, 16))

        assert points[9].realized == 500
        assert points[19].realized == 0


class TestMonthlyReport:

    @pytest.mark.asyncio
    async def test_loads_month_data(self):
        with patch('clinic_api.reports.services.get_completed_sales', AsyncMock(return_value=SALES)) as mock_sales, \
                patch('clinic_api.reports.services.get_expenses', AsyncMock(return_value=EXPENSES)) as mock_expenses, \
                patch('clinic_api.reports.services.get_clinic_settings', AsyncMock(return_value=SETTINGS)):
            report = await get_monthly_report("clinic123", 2025, 7, today=date(2025, 7, 16))

        mock_sales.assert_awaited_once_with("clinic123", "2025-07-01", "2025-07-31")
        mock_expenses.assert_awaited_once_with("clinic123", year=2025, month=7)
        assert report.grossRevenue == pytest.approx(3000)

    @pytest.mark.asyncio
    async def test_cache_hit_skips_queries(self):
        cached = build_income_statement(2025, 7, SALES, EXPENSES, SETTINGS, date(2025, 7, 16)).model_dump(mode='json')

        with patch('clinic_api.reports.services.get_cache', AsyncMock(return_value=cached)), \
                patch('clinic_api.reports.services.get_completed_sales', AsyncMock()) as mock_sales:
            report = await get_monthly_report("clinic123", 2025, 7, today=date(2025, 7, 16))

        mock_sales.assert_not_awaited()
        assert report.ebitda == pytest.approx(-760)


class TestSalesSummary:

    @pytest.mark.asyncio
    async def test_summary(self):
        items = [
            SaleItem(lotId="lot-a", skuId="sku-a", productName="Botox", canonicalClass=TherapeuticClass.TOXIN,
                     quantity=2, unitPrice=500, unitCost=150, lineTotal=1000),
        ]
        sales = [
            _sale("s1", "2025-07-10", "PIX", 1000, 300, items=items, tier=ComboTier.BRONZE),
            _sale("s2", "2025-07-16", "CREDIT", 2000, 700),
            _sale("s3", "2025-07-17", "DEBIT", 500, 100),
        ]

        with patch('clinic_api.reports.services.get_completed_sales', AsyncMock(return_value=sales)) as mock_sales:
            summary = await get_sales_summary("clinic123", start_date="2025-07", end_date="2025-07")

        mock_sales.assert_awaited_once_with("clinic123", "2025-07-01", "2025-07-31")
        assert summary.revenue == pytest.approx(3500)
        assert summary.cost == pytest.approx(1100)
        assert summary.margin == pytest.approx(2400)
        assert summary.sales == 3
        assert summary.patients == 1
        assert summary.averageTicket == pytest.approx(3500 / 3)
        assert summary.unitsByClass[TherapeuticClass.TOXIN.value] == 2
        assert summary.salesByTier["BRONZE"] == 1
        assert summary.salesByTier["NONE"] == 2

    @pytest.mark.asyncio
    async def test_empty_period(self):
        with patch('clinic_api.reports.services.get_completed_sales', AsyncMock(return_value=[])):
            summary = await get_sales_summary("clinic123", start_date="2025-07-01", end_date="2025-07-01")

        assert summary.sales == 0
        assert summary.averageTicket == 0


class TestRankings:

    ITEMS_A = [
        SaleItem(lotId="lot-a", skuId="sku-a", productName="Botox", canonicalClass=TherapeuticClass.TOXIN,
                 quantity=2, unitPrice=500, unitCost=150, lineTotal=1000),
    ]
    ITEMS_B = [
        SaleItem(lotId="lot-b", skuId="sku-b", productName="Restylane", canonicalClass=TherapeuticClass.FILLER,
                 quantity=1, unitPrice=1200, unitCost=400, lineTotal=1200),
        SaleItem(lotId="lot-a2", skuId="sku-a", productName="Botox", canonicalClass=TherapeuticClass.TOXIN,
                 quantity=1, unitPrice=500, unitCost=150, lineTotal=500),
    ]

    def test_patients_by_amount_spent(self):
        sales = [
            _sale("s1", "2025-07-10", "PIX", 1000, 300, patient="patient1"),
            _sale("s2", "2025-07-16", "CREDIT", 2000, 700, patient="patient2"),
            _sale("s3", "2025-07-20", "DEBIT", 1500, 500, patient="patient1"),
        ]

        ranking = rank_patients(sales, {"patient1": "Ana Souza"})

        assert [rank.patientId for rank in ranking] == ["patient1", "patient2"]
        assert ranking[0].name == "Ana Souza"
        assert ranking[0].total == pytest.approx(2500)
        assert ranking[0].visits == 2
        assert ranking[0].averageTicket == pytest.approx(1250)
        assert ranking[0].lastVisit == "2025-07-20"
        assert ranking[1].name == "Unidentified patient"

    def test_products_by_units_sold(self):
        sales = [
            _sale("s1", "2025-07-10", "PIX", 1000, 300, items=self.ITEMS_A),
            _sale("s2", "2025-07-16", "CREDIT", 1700, 550, items=self.ITEMS_B),
        ]

        ranking = rank_products(sales)

        assert [rank.skuId for rank in ranking] == ["sku-a", "sku-b"]
        assert ranking[0].quantity == 3
        assert ranking[0].revenue == pytest.approx(1500)
        assert ranking[0].canonicalClass == TherapeuticClass.TOXIN
        assert ranking[1].quantity == 1

    @pytest.mark.asyncio
    async def test_patient_rankings_load_month_and_names(self):
        with patch('clinic_api.reports.services.get_completed_sales', AsyncMock(return_value=SALES)) as mock_sales, \
                patch('clinic_api.reports.services.get_patient_names',
                      AsyncMock(return_value={"patient1": "Ana", "patient2": "Bia"})) as mock_names:
            rankings = await get_rankings("clinic123", 2025, 7, RankingType.PATIENTS, limit=1)

        mock_sales.assert_awaited_once_with("clinic123", "2025-07-01", "2025-07-31")
        mock_names.assert_awaited_once_with("clinic123")
        assert [rank.name for rank in rankings.patients] == ["Bia"]
        assert rankings.products == []

    @pytest.mark.asyncio
    async def test_product_rankings_skip_patient_lookup(self):
        sales = [_sale("s1", "2025-07-10", "PIX", 1000, 300, items=self.ITEMS_A)]
        with patch('clinic_api.reports.services.get_completed_sales', AsyncMock(return_value=sales)), \
                patch('clinic_api.reports.services.get_patient_names', AsyncMock()) as mock_names:
            rankings = await get_rankings("clinic123", 2025, 7, RankingType.PRODUCTS)

        mock_names.assert_not_awaited()
        assert rankings.type == RankingType.PRODUCTS
        assert rankings.products[0].skuId == "sku-a"
        assert rankings.patients == []


class TestReportEndpoints:

    def test_monthly_endpoint(self, clinic_client):
        report = build_income_statement(2025, 7, SALES, EXPENSES, SETTINGS, date(2025, 7, 16))
        with patch('clinic_api.reports.routers.get_monthly_report', AsyncMock(return_value=report)) as mock_report:
            response = clinic_client.get("/reports/monthly?clinic_id=clinic123&year=2025&month=7")

        body = response.json()
        assert body["status"] == "success"
        assert body["data"]["businessDays"] == 23
        assert len(body["data"]["daily"]) == 31
        assert mock_report.call_args.args[:3] == ("clinic123", 2025, 7)

    def test_monthly_rejects_invalid_month(self, clinic_client):
        response = clinic_client.get("/reports/monthly?clinic_id=clinic123&year=2025&month=13")

        assert response.status_code == 422

    def test_summary_invalid_date(self, clinic_client):
        with patch('clinic_api.reports.services.get_completed_sales', AsyncMock(return_value=[])):
            response = clinic_client.get("/reports/summary?clinic_id=clinic123&start_date=07-2025")

        body = response.json()
        assert body["status"] == "error"
        assert body["code"] == 400

    def test_rankings_endpoint(self, clinic_client):
        rankings = RankingsResponse(year=2025, month=7, type=RankingType.PRODUCTS,
                                    products=rank_products([_sale("s1", "2025-07-10", "PIX", 1000, 300,
                                                                  items=TestRankings.ITEMS_A)]))
        with patch('clinic_api.reports.routers.get_rankings', AsyncMock(return_value=rankings)) as mock_rankings:
            response = clinic_client.get("/reports/rankings?clinic_id=clinic123&year=2025&month=7&type=products&limit=5")

        body = response.json()
        assert body["status"] == "success"
        assert body["data"]["type"] == "products"
        assert body["data"]["products"][0]["quantity"] == 2
        assert mock_rankings.call_args.args == ("clinic123", 2025, 7, RankingType.PRODUCTS)
        assert mock_rankings.call_args.kwargs == {"limit": 5}

    def test_rankings_rejects_unknown_type(self, clinic_client):
        response = clinic_client.get("/reports/rankings?clinic_id=clinic123&type=professionals")

        assert response.status_code == 422

"""
Tests for expenses and clinic financial settings.
"""
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from clinic_api.auth.dependencies import get_clinic_auth
from clinic_api.finance.schemas import (
    ClinicSettings, ClinicSettingsUpdate, CostType, ExpenseCategory, ExpenseCreate, DEFAULT_HOLIDAYS
)
from clinic_api.finance.services import (
    create_commission_expense, delete_expense, get_clinic_settings, get_expenses, update_clinic_settings
)
from clinic_api.sales.commission import CommissionDraft
from conftest import make_doc
from fastapi.testclient import TestClient


class TestFinanceSchemas:

    def test_settings_defaults(self):
        settings = ClinicSettings()

        assert settings.taxRatePct == 0
        assert settings.innovationReservePct == 10
        assert settings.holidays == DEFAULT_HOLIDAYS

    def test_reserve_must_be_below_100(self):
        with pytest.raises(ValidationError):
            ClinicSettings(innovationReservePct=100)

    def test_holidays_are_validated_and_sorted(self):
        settings = ClinicSettings(holidays=["2025-12-25", "2025-01-01", "2025-12-25"])
        assert settings.holidays == ["2025-01-01", "2025-12-25"]

        with pytest.raises(ValidationError):
            ClinicSettings(holidays=["25/12/2025"])

    def test_holidays_are_zero_padded(self):
        settings = ClinicSettings(holidays=["2025-12-25", "2025-1-1"])

        assert settings.holidays == ["2025-01-01", "2025-12-25"]

    def test_expense_amount_must_be_positive(self):
        with pytest.raises(ValidationError):
            ExpenseCreate(description="Rent", amount=0, periodMonth=7, periodYear=2025)


class TestExpenses:

    @pytest.mark.asyncio
    async def test_commission_expense(self, mock_firestore):
        mock_firestore.collection.return_value.document.return_value.id = "exp1"
        draft = CommissionDraft(saleId="sale1", professionalId="pro1", amount=40.5, rate=10,
                                periodMonth=7, periodYear=2025)

        expense = await create_commission_expense(draft, "clinic123")

        assert expense.id == "exp1"
        assert expense.category == ExpenseCategory.COMMISSION
        assert expense.costType == CostType.VARIABLE
        assert expense.saleId == "sale1"
        assert expense.professionalId == "pro1"
        assert expense.description == "Commission for sale sale1 (10%)"
        stored = mock_firestore.collection.return_value.document.return_value.set.call_args.args[0]
        assert stored["category"] == "COMMISSION"
        assert stored["clinicId"] == "clinic123"

    @pytest.mark.asyncio
    async def test_delete_expense_of_another_clinic(self, mock_firestore):
        document = mock_firestore.collection.return_value.document.return_value
        document.get.return_value = make_doc("exp1", {"clinicId": "other"})

        with pytest.raises(HTTPException) as exc_info:
            await delete_expense("exp1", "clinic123")

        assert exc_info.value.status_code == 404
        document.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_expense(self, mock_firestore):
        document = mock_firestore.collection.return_value.document.return_value
        document.get.return_value = make_doc("exp1", {"clinicId": "clinic123"})

        await delete_expense("exp1", "clinic123")

        document.delete.assert_called_once()

    @pytest.mark.asyncio
    async def test_filter_by_cost_type(self, mock_firestore):
        query = mock_firestore.collection.return_value.where.return_value
        query.where.return_value = query
        query.stream.return_value = [
            make_doc("e1", {"clinicId": "clinic123", "description": "Rent", "amount": 2000,
                            "costType": "FIXED", "category": "RENT", "periodMonth": 7, "periodYear": 2025}),
            make_doc("e2", {"clinicId": "clinic123", "description": "Commission", "amount": 40,
                            "costType": "VARIABLE", "category": "COMMISSION", "periodMonth": 7, "periodYear": 2025}),
        ]

        expenses = await get_expenses("clinic123", year=2025, month=7, cost_type=CostType.FIXED)

        assert [e.id for e in expenses] == ["e1"]


class TestClinicSettings:

    @pytest.mark.asyncio
    async def test_missing_settings_use_defaults(self, mock_firestore):
        mock_firestore.collection.return_value.document.return_value.get.return_value = make_doc(
            "clinic123", None, exists=False
        )

        settings = await get_clinic_settings("clinic123")

        assert settings == ClinicSettings()

    @pytest.mark.asyncio
    async def test_update_merges_fields(self, mock_firestore):
        document = mock_firestore.collection.return_value.document.return_value
        document.get.return_value = make_doc("clinic123", {"taxRatePct": 6, "cardFeePct": 3})

        settings = await update_clinic_settings("clinic123", ClinicSettingsUpdate(monthlyNetProfitTarget=20000))

        assert settings.taxRatePct == 6
        assert settings.cardFeePct == 3
        assert settings.monthlyNetProfitTarget == 20000
        args, kwargs = document.set.call_args
        assert args[0]["monthlyNetProfitTarget"] == 20000
        assert kwargs == {"merge": True}


class TestFinanceEndpoints:

    def test_create_expense_invalidates_reports(self, clinic_client, mock_firestore):
        mock_firestore.collection.return_value.document.return_value.id = "exp7"

        with patch('clinic_api.finance.routers.invalidate_clinic_reports', AsyncMock()) as mock_invalidate:
            response = clinic_client.post("/finance/expenses?clinic_id=clinic123", json={
                "description": "Rent",
                "category": "RENT",
                "costType": "FIXED",
                "amount": 3500,
                "periodMonth": 7,
                "periodYear": 2025,
            })

        body = response.json()
        assert body["status"] == "success"
        assert body["data"]["item"]["id"] == "exp7"
        mock_invalidate.assert_awaited_once_with("clinic123")

    def test_list_expenses_total(self, clinic_client, mock_firestore):
        query = mock_firestore.collection.return_value.where.return_value
        query.where.return_value = query
        query.stream.return_value = [
            make_doc("e1", {"clinicId": "clinic123", "description": "Rent", "amount": 2000,
                            "costType": "FIXED", "periodMonth": 7, "periodYear": 2025}),
            make_doc("e2", {"clinicId": "clinic123", "description": "Ads", "amount": 500,
                            "costType": "FIXED", "periodMonth": 7, "periodYear": 2025}),
        ]

        response = clinic_client.get("/finance/expenses?clinic_id=clinic123&year=2025&month=7")

        assert response.json()["data"]["total"] == 2500

    def test_staff_cannot_change_settings(self, test_app):
        test_app.dependency_overrides[get_clinic_auth] = lambda: ("user456", {"id": "clinic123", "role": "staff"})
        try:
            response = TestClient(test_app).put("/finance/settings?clinic_id=clinic123", json={"taxRatePct": 8})
        finally:
            test_app.dependency_overrides.clear()

        assert response.status_code == 403

    def test_settings_validation(self, clinic_client):
        response = clinic_client.put("/finance/settings?clinic_id=clinic123", json={"cardFeePct": 150})

        assert response.status_code == 422

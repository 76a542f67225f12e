"""
Unit tests for authentication and authorization dependencies.
"""
import pytest
from unittest.mock import MagicMock, patch
from fastapi import HTTPException

from clinic_api.auth.dependencies import (
    get_current_user_id,
    verify_clinic_access,
    get_clinic_auth,
    get_clinic_owner_access
)


class TestAuthDependencies:
    """Test authentication and authorization dependencies."""

    @pytest.mark.asyncio
    async def test_get_current_user_id_success(self):
        """Test successful user ID extraction from valid token."""
        with patch('firebase_admin.auth.verify_id_token') as mock_verify:
            mock_verify.return_value = {"uid": "user123"}

            user_id = await get_current_user_id("Bearer valid_token")

            assert user_id == "user123"
            mock_verify.assert_called_once_with("valid_token")

    @pytest.mark.asyncio
    async def test_get_current_user_id_missing_header(self):
        """Test error when authorization header is missing."""
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user_id(None)

        assert exc_info.value.status_code == 401
        assert "Authorization header is required" in str(exc_info.value.detail)

    @pytest.mark.asyncio
    async def test_get_current_user_id_local_bypass(self, monkeypatch):
        """Local development without a token gets a fixed user."""
        monkeypatch.setenv("ENV", "local")

        assert await get_current_user_id(None) == "local-test-user-id"

    @pytest.mark.asyncio
    async def test_get_current_user_id_invalid_token(self):
        """Test error when token is invalid."""
        with patch('firebase_admin.auth.verify_id_token') as mock_verify:
            mock_verify.side_effect = Exception("Invalid token")

            with pytest.raises(HTTPException) as exc_info:
                await get_current_user_id("Bearer invalid_token")

            assert exc_info.value.status_code == 401
            assert "Invalid authentication token" in str(exc_info.value.detail)

    @pytest.mark.asyncio
    async def test_verify_clinic_access_success(self, mock_firestore):
        """Test successful clinic access verification."""
        user_doc = MagicMock()
        user_doc.exists = True
        user_doc.to_dict.return_value = {
            "clinics": [
                {"id": "clinic123", "role": "owner"},
                {"id": "clinic456", "role": "staff"}
            ]
        }

        user_ref = MagicMock()
        user_ref.get.return_value = user_doc

        mock_firestore.collection.return_value.document.return_value = user_ref

        result = await verify_clinic_access("user123", "clinic123")

        assert result == {"id": "clinic123", "role": "owner"}
        mock_firestore.collection.assert_called_with('users')

    @pytest.mark.asyncio
    async def test_verify_clinic_access_missing_clinic(self):
        with pytest.raises(HTTPException) as exc_info:
            await verify_clinic_access("user123", "")

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_verify_clinic_access_user_not_found(self, mock_firestore):
        """Test error when user doesn't exist."""
        user_doc = MagicMock()
        user_doc.exists = False

        user_ref = MagicMock()
        user_ref.get.return_value = user_doc

        mock_firestore.collection.return_value.document.return_value = user_ref

        with pytest.raises(HTTPException) as exc_info:
            await verify_clinic_access("nonexistent_user", "clinic123")

        assert exc_info.value.status_code == 404
        assert "User not found" in str(exc_info.value.detail)

    @pytest.mark.asyncio
    async def test_verify_clinic_access_no_permission(self, mock_firestore):
        """Test error when user doesn't have access to clinic."""
        user_doc = MagicMock()
        user_doc.exists = True
        user_doc.to_dict.return_value = {
            "clinics": [
                {"id": "clinic456", "role": "staff"}
            ]
        }

        user_ref = MagicMock()
        user_ref.get.return_value = user_doc

        mock_firestore.collection.return_value.document.return_value = user_ref

        with pytest.raises(HTTPException) as exc_info:
            await verify_clinic_access("user123", "clinic123")

        assert exc_info.value.status_code == 403
        assert "Access denied" in str(exc_info.value.detail)

    @pytest.mark.asyncio
    async def test_verify_clinic_access_backend_failure(self, mock_firestore):
        mock_firestore.collection.side_effect = Exception("unavailable")

        with pytest.raises(HTTPException) as exc_info:
            await verify_clinic_access("user123", "clinic123")

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_get_clinic_auth_success(self):
        """Test successful combined authentication and authorization."""
        with patch('clinic_api.auth.dependencies.verify_clinic_access') as mock_verify:
            mock_verify.return_value = {"id": "clinic123", "role": "owner"}

            result = await get_clinic_auth("clinic123", "user123")

            assert result == ("user123", {"id": "clinic123", "role": "owner"})
            mock_verify.assert_called_once_with("user123", "clinic123")

    @pytest.mark.asyncio
    async def test_get_clinic_owner_access_allows_admin(self):
        auth_info = ("user123", {"id": "clinic123", "role": "admin"})

        assert await get_clinic_owner_access(auth_info) == auth_info

    @pytest.mark.asyncio
    async def test_get_clinic_owner_access_rejects_staff(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_clinic_owner_access(("user123", {"id": "clinic123", "role": "staff"}))

        assert exc_info.value.status_code == 403

    def test_endpoint_requires_clinic_id(self, client):
        """The clinic is a required query parameter."""
        with patch('firebase_admin.auth.verify_id_token', return_value={"uid": "user123"}):
            response = client.get("/patients", headers={"Authorization": "Bearer valid_token"})

        assert response.status_code == 422

    def test_endpoint_requires_token(self, client):
        response = client.get("/patients?clinic_id=clinic123")

        assert response.status_code == 401

"""
Authentication and authorization dependencies for FastAPI endpoints.

Every tenant-scoped endpoint takes the clinic as an explicit `clinic_id` query
parameter; access is granted when the clinic appears in the caller's user document.
"""
import logging
import os
from typing import Optional

from fastapi import HTTPException, Header, Depends, Query
from firebase_admin import auth, firestore

from clinic_api.common.schemas import OWNER_ROLE, ADMIN_ROLE

logger = logging.getLogger(__name__)


def get_firestore_client():
    return firestore.client()


async def get_current_user_id(authorization: Optional[str] = Header(None)) -> str:
    """
    Extract and verify user ID from Firebase ID token.

    Args:
        authorization: Authorization header with Bearer token

    Returns:
        str: User ID from verified token

    Raises:
        HTTPException: If token is invalid or missing
    """
    # Only bypass authentication for local development if no authorization header is provided
    if os.getenv("ENV") == "local" and not authorization:
        logger.debug("Local environment with no auth header, bypassing authentication")
        return "local-test-user-id"

    if not authorization:
        raise HTTPException(
            status_code=401,
            detail="Authorization header is required"
        )

    try:
        token = authorization.replace("Bearer ", "")
        decoded_token = auth.verify_id_token(token)
        return decoded_token["uid"]
    except Exception as e:
        logger.info("Token verification failed: %s", e)
        raise HTTPException(
            status_code=401,
            detail=f"Invalid authentication token: {str(e)}"
        )


async def verify_clinic_access(user_id: str, clinic_id: str) -> dict:
    """
    Verify that a user has access to a specific clinic.

    Args:
        user_id: The ID of the user
        clinic_id: The ID of the clinic to check access for

    Returns:
        dict: Clinic entry from the user's clinics list ({"id", "role"})

    Raises:
        HTTPException: If user doesn't have access to the clinic
    """
    if not clinic_id:
        raise HTTPException(
            status_code=400,
            detail="Missing clinic ID parameter"
        )

    # Bypass clinic access verification for local development
    if os.getenv("ENV") == "local":
        return {
            "id": clinic_id,
            "role": OWNER_ROLE
        }

    try:
        db = get_firestore_client()
        user_doc = db.collection('users').document(user_id).get()

        if not user_doc.exists:
            raise HTTPException(
                status_code=404,
                detail="User not found"
            )

        user_data = user_doc.to_dict() or {}
        user_clinic = next(
            (clinic for clinic in user_data.get('clinics', []) if clinic.get('id') == clinic_id),
            None
        )

        if not user_clinic:
            raise HTTPException(
                status_code=403,
                detail="Access denied: User does not have permission to access this clinic"
            )

        return user_clinic

    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Internal server error: {str(e)}"
        )


async def get_clinic_auth(
        clinic_id: str = Query(..., description="Clinic ID to access"),
        user_id: str = Depends(get_current_user_id)
) -> tuple[str, dict]:
    """
    Dependency that combines user authentication and clinic authorization.

    Args:
        clinic_id: The ID of the clinic to access (from query parameter)
        user_id: The authenticated user ID (injected by dependency)

    Returns:
        tuple: (user_id, clinic_info)
    """
    clinic_info = await verify_clinic_access(user_id, clinic_id)
    return user_id, clinic_info


async def get_clinic_owner_access(
        auth_info: tuple = Depends(get_clinic_auth)
) -> tuple[str, dict]:
    """
    Dependency that verifies the user manages the clinic.
    Required for operations like registering professionals or editing financial settings.

    Raises:
        HTTPException: If the user is neither owner nor admin of the clinic
    """
    user_id, clinic_info = auth_info

    if clinic_info.get('role') not in [OWNER_ROLE, ADMIN_ROLE]:
        raise HTTPException(
            status_code=403,
            detail="Access denied: Only clinic owners can perform this action"
        )

    return user_id, clinic_info

"""Saved shipping address routes."""

from fastapi import APIRouter

from src.api.deps import CurrentUser
from src.schemas.profile import AddressEnvelope, AddressPayload, AddressResponse
from src.services.profile_service import ProfileService

router = APIRouter(prefix="/address", tags=["address"])


@router.get(
    "",
    response_model=AddressEnvelope,
    summary="Get my saved address",
    description="Returns the authenticated user's saved shipping address, or null.",
)
async def get_my_address(user: CurrentUser) -> AddressEnvelope:
    """Get the current user's saved address."""
    address = await ProfileService().get_address(user.user_id)
    return AddressEnvelope(address=AddressResponse(**address) if address else None)


@router.put(
    "",
    response_model=AddressEnvelope,
    summary="Save my address",
    description="Creates or replaces the saved shipping address used at checkout.",
    responses={400: {"description": "Missing required fields or invalid phone"}},
)
async def save_my_address(data: AddressPayload, user: CurrentUser) -> AddressEnvelope:
    """Create or replace the current user's saved address.

    Existing orders keep the address they were placed with.
    """
    service = ProfileService()
    await service.get_or_create_profile(user_id=user.user_id, email=user.email)
    address = await service.save_address(user.user_id, data)
    return AddressEnvelope(address=AddressResponse(**address))

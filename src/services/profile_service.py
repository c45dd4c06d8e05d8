"""Profile and saved-address business logic service."""

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from src.api.middleware.error_handler import ValidationError
from src.core.supabase import get_supabase_client
from src.models.profile import AddressUpsert
from src.schemas.profile import AddressPayload

REQUIRED_ADDRESS_FIELDS = ("full_name", "phone", "line1", "city", "state")
OPTIONAL_ADDRESS_FIELDS = ("line2", "landmark")
MIN_PHONE_LENGTH = 7


def _clean(value: Any) -> str:
    return str(value or "").strip()


def missing_address_fields(address: dict[str, Any] | None) -> list[str]:
    """List required shipping fields that are absent or blank.

    Args:
        address: Saved address row, or None.

    Returns:
        list[str]: Names of missing fields, all of them if there is no address.
    """
    if not address:
        return list(REQUIRED_ADDRESS_FIELDS)
    return [field for field in REQUIRED_ADDRESS_FIELDS if not _clean(address.get(field))]


class ProfileService:
    """Service for managing customer profiles and addresses."""

    def __init__(self) -> None:
        """Initialize profile service with Supabase client."""
        self.client = get_supabase_client()

    async def get_or_create_profile(
        self,
        user_id: UUID,
        email: str | None = None,
    ) -> dict[str, Any]:
        """Get existing profile or create a new one.

        Args:
            user_id: The auth user ID.
            email: User's email address from the token.

        Returns:
            dict: The profile data.
        """
        response = (
            self.client.table("profiles")
            .select("*")
            .eq("user_id", str(user_id))
            .execute()
        )

        if response.data:
            return response.data[0]

        profile_data = {
            "user_id": str(user_id),
            "email": email,
            "display_name": email,
        }

        response = (
            self.client.table("profiles")
            .upsert(profile_data, on_conflict="user_id")
            .execute()
        )

        return response.data[0]

    async def get_address(self, user_id: UUID) -> dict[str, Any] | None:
        """Get the user's saved shipping address.

        Args:
            user_id: The auth user ID.

        Returns:
            dict | None: The address or None if none saved.
        """
        response = (
            self.client.table("addresses")
            .select("*")
            .eq("user_id", str(user_id))
            .maybe_single()
            .execute()
        )

        return response.data if response and response.data else None

    async def save_address(self, user_id: UUID, payload: AddressPayload) -> dict[str, Any]:
        """Create or replace the user's saved shipping address.

        Orders keep their own snapshot, so editing here never changes
        existing orders.

        Args:
            user_id: The auth user ID.
            payload: Submitted address fields.

        Returns:
            dict: The stored address.

        Raises:
            ValidationError: If required fields are missing or the phone is too short.
        """
        values = {field: _clean(getattr(payload, field)) for field in REQUIRED_ADDRESS_FIELDS}
        missing = [field for field, value in values.items() if not value]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                details=[{"loc": ["address", field], "msg": "required", "type": "missing"} for field in missing],
            )

        if len(values["phone"]) < MIN_PHONE_LENGTH:
            raise ValidationError(
                "Phone number looks too short",
                details=[{"loc": ["address", "phone"], "msg": "too short", "type": "value_error"}],
            )

        address_data: AddressUpsert = {"user_id": str(user_id), **values}
        for field in OPTIONAL_ADDRESS_FIELDS:
            address_data[field] = _clean(getattr(payload, field)) or None
        address_data["updated_at"] = datetime.now(timezone.utc).isoformat()

        response = (
            self.client.table("addresses")
            .upsert(address_data, on_conflict="user_id")
            .execute()
        )

        return response.data[0]

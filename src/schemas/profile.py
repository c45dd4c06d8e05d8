"""Address schemas for the saved shipping address endpoints."""

from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class AddressPayload(BaseModel):
    """Body of PUT /address.

    Field presence is checked by the service so that the error names the
    missing fields.
    """

    model_config = ConfigDict(populate_by_name=True)

    full_name: str | None = Field(default=None, validation_alias=AliasChoices("fullName", "full_name"))
    phone: str | None = None
    line1: str | None = None
    line2: str | None = None
    landmark: str | None = None
    city: str | None = None
    state: str | None = None


class AddressResponse(BaseModel):
    """Saved shipping address."""

    model_config = ConfigDict(from_attributes=True)

    full_name: str
    phone: str
    line1: str
    line2: str | None = None
    landmark: str | None = None
    city: str
    state: str
    updated_at: datetime | None = None


class AddressEnvelope(BaseModel):
    """Wrapper so that a missing address serializes as null."""

    ok: bool = True
    address: AddressResponse | None = None

"""Paystack gateway response models.

Only the fields the reconciliation logic inspects are modelled. The full
gateway payload travels alongside in ``raw`` and is stored for audit only.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# Canonical outcome of a payment, independent of gateway vocabulary
PaymentOutcome = Literal["success", "failed", "pending"]

# Gateway statuses that settle a transaction as failed
FAILED_GATEWAY_STATUSES = frozenset({"failed", "abandoned", "reversed"})


class TransactionInitialized(BaseModel):
    """Successful response from the transaction initialize endpoint."""

    model_config = ConfigDict(from_attributes=True)

    authorization_url: str = Field(description="Hosted payment page URL")
    access_code: str | None = Field(default=None, description="Gateway access code")
    reference: str = Field(description="Reference the gateway registered")
    raw: dict[str, Any] = Field(default_factory=dict, description="Full gateway payload")


class TransactionVerified(BaseModel):
    """Gateway answered a verify request."""

    model_config = ConfigDict(from_attributes=True)

    kind: Literal["verified"] = "verified"
    gateway_status: str = Field(description="Raw transaction status reported by the gateway")
    reference: str = Field(description="Transaction reference")
    raw: dict[str, Any] = Field(default_factory=dict, description="Full gateway payload")


class VerificationUnavailable(BaseModel):
    """Verify request failed before the gateway reported a status."""

    model_config = ConfigDict(from_attributes=True)

    kind: Literal["unavailable"] = "unavailable"
    reason: str = Field(description="Why verification could not complete")
    raw: dict[str, Any] | None = Field(default=None, description="Gateway payload, if any")


GatewayVerification = Annotated[
    Union[TransactionVerified, VerificationUnavailable],
    Field(discriminator="kind"),
]


def map_gateway_status(verification: GatewayVerification) -> PaymentOutcome:
    """Collapse a verification result into a canonical outcome.

    Args:
        verification: Result of a verify call.

    Returns:
        PaymentOutcome: success, failed, or pending for anything undecided.
    """
    if isinstance(verification, VerificationUnavailable):
        return "pending"

    status = verification.gateway_status.strip().lower()
    if status == "success":
        return "success"
    if status in FAILED_GATEWAY_STATUSES:
        return "failed"
    return "pending"


class WebhookEvent(BaseModel):
    """Envelope of a Paystack webhook notification.

    The embedded transaction data is informational; outcomes always come
    from an independent verify call.
    """

    model_config = ConfigDict(extra="allow")

    event: str = Field(default="", description="Event type, e.g. charge.success")
    data: dict[str, Any] = Field(default_factory=dict, description="Event payload")

    @property
    def reference(self) -> str:
        """Transaction reference carried by the event, if any."""
        return str(self.data.get("reference") or "").strip()

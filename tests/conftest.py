"""Pytest configuration and fixtures."""

import os
import time
from collections.abc import Generator
from contextlib import ExitStack
from typing import Any
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SUPABASE_SIGNING_KEY_JWK", "test-signing-key-jwk")
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_fake_secret")
os.environ.setdefault("APP_URL", "https://shop.example.com")
os.environ.setdefault("ADMIN_EMAILS", "admin@example.com")
os.environ.setdefault("RESEND_API_KEY", "")
os.environ.setdefault("ADMIN_ORDER_EMAIL", "")

from src.api.middleware.auth import AuthError, AuthErrorCode  # noqa: E402
from src.schemas.auth import TokenPayload  # noqa: E402
from tests.fakes import (  # noqa: E402
    ADMIN_ID,
    CUSTOMER_ID,
    OTHER_CUSTOMER_ID,
    FakePaystack,
    FakeSupabase,
)

SUPABASE_CLIENT_PATHS = (
    "src.core.supabase.get_supabase_client",
    "src.services.order_service.get_supabase_client",
    "src.services.payment_service.get_supabase_client",
    "src.services.cart_service.get_supabase_client",
    "src.services.profile_service.get_supabase_client",
)

PAYSTACK_CLIENT_PATHS = (
    "src.services.checkout_service.get_paystack_client",
    "src.services.reconciliation_service.get_paystack_client",
)


def make_token_payload(user_id: str, email: str | None) -> TokenPayload:
    """Build the claims decode_jwt would return for a user."""
    now = int(time.time())
    return TokenPayload(
        sub=user_id,
        email=email,
        role="authenticated",
        exp=now + 3600,
        iat=now,
        aud="authenticated",
    )


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    get_settings.cache_clear()
    settings = get_settings()
    yield settings
    get_settings.cache_clear()


@pytest.fixture
def fake_db() -> Generator[FakeSupabase, None, None]:
    """Provide an in-memory Supabase wired into every service.

    Yields:
        FakeSupabase: The shared fake database.
    """
    db = FakeSupabase()
    with ExitStack() as stack:
        for path in SUPABASE_CLIENT_PATHS:
            stack.enter_context(patch(path, return_value=db))
        yield db


@pytest.fixture
def fake_gateway() -> Generator[FakePaystack, None, None]:
    """Provide a scriptable Paystack API wired into checkout and reconciliation.

    Yields:
        FakePaystack: The fake gateway.
    """
    gateway = FakePaystack()
    with ExitStack() as stack:
        for path in PAYSTACK_CLIENT_PATHS:
            stack.enter_context(patch(path, return_value=gateway.client()))
        yield gateway


@pytest.fixture
def shop(fake_db: FakeSupabase) -> dict[str, Any]:
    """Seed the customer from the checkout scenario: product A in the cart, full address.

    Product A costs 500000 kobo with 3 in stock; the cart holds 2.
    """
    fake_db.seed_profile(CUSTOMER_ID, "ada@example.com")
    fake_db.seed_address(CUSTOMER_ID)
    product = fake_db.seed_product("Product A", price=500000, stock=3)
    cart = fake_db.seed_cart(CUSTOMER_ID, [(product["id"], 2)])
    return {"product": product, "cart": cart, "user_id": CUSTOMER_ID}


@pytest.fixture
def client(fake_db: FakeSupabase, fake_gateway: FakePaystack) -> Generator[TestClient, None, None]:
    """Provide a test client backed by the fake database and gateway.

    Yields:
        TestClient: FastAPI test client.
    """
    from src.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_tokens() -> Generator[dict[str, TokenPayload], None, None]:
    """Patch JWT decoding so each known bearer token maps to a user.

    Yields:
        dict: token -> claims, extendable by tests.
    """
    tokens = {
        "customer-token": make_token_payload(CUSTOMER_ID, "ada@example.com"),
        "other-token": make_token_payload(OTHER_CUSTOMER_ID, "bola@example.com"),
        "admin-token": make_token_payload(ADMIN_ID, "admin@example.com"),
    }

    def decode(token: str) -> TokenPayload:
        if token not in tokens:
            raise AuthError("Invalid token", AuthErrorCode.INVALID_TOKEN)
        return tokens[token]

    with patch("src.api.deps.decode_jwt", side_effect=decode):
        yield tokens


@pytest.fixture
def customer_headers(auth_tokens: dict[str, TokenPayload]) -> dict[str, str]:
    """Authenticate requests as the seeded customer."""
    return {"Authorization": "Bearer customer-token"}


@pytest.fixture
def other_customer_headers(auth_tokens: dict[str, TokenPayload]) -> dict[str, str]:
    """Authenticate requests as a second customer."""
    return {"Authorization": "Bearer other-token"}


@pytest.fixture
def admin_headers(auth_tokens: dict[str, TokenPayload]) -> dict[str, str]:
    """Authenticate requests as an admin listed in ADMIN_EMAILS."""
    return {"Authorization": "Bearer admin-token"}

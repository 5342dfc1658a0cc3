"""Token top-up service.

This service provides:
- Token package definitions and per-currency prices
- Conversion of a custom amount of money into tokens
- A simulated checkout that credits the ledger

There is no payment gateway behind the checkout; it only records the
credit with enough metadata to reconcile it later.
"""

import logging
import uuid
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import utcnow
from app.core.exceptions import ValidationError
from app.models.transaction import TokenTransaction
from app.schemas.token import Currency, TokenPackage
from app.services.token_service import TokenService

logger = logging.getLogger(__name__)

# Base rate: 100 tokens = EUR 1.00
BASE_TOKENS_PER_EUR = Decimal(100)

# EUR -> currency
EXCHANGE_RATES: dict[Currency, Decimal] = {
    Currency.EUR: Decimal("1"),
    Currency.GBP: Decimal("0.8696"),
    Currency.USD: Decimal("1.1850"),
}

TOKEN_RATES: dict[Currency, Decimal] = {
    currency: BASE_TOKENS_PER_EUR / rate for currency, rate in EXCHANGE_RATES.items()
}

CUSTOM_PACKAGE_ID = "ENTERPRISE"
TOKEN_ROUNDING_STEP = 10

# Token package definitions
TOKEN_PACKAGES: list[TokenPackage] = [
    TokenPackage(id="STARTER", name="Starter Spark", tokens=10_000),
    TokenPackage(id="POPULAR", name="Momentum Pack", tokens=20_000, popular=True),
    TokenPackage(id="PRO", name="Elite Performance", tokens=30_000),
    TokenPackage(id=CUSTOM_PACKAGE_ID, name="Custom amount", tokens=None),
]

# Create a lookup dictionary for fast access
PACKAGE_LOOKUP: dict[str, TokenPackage] = {pkg.id: pkg for pkg in TOKEN_PACKAGES}


class InvalidPackageError(ValidationError):
    """Raised when an invalid package ID is provided."""


def get_package(package_id: str) -> TokenPackage:
    """Get a token package by ID (case-insensitive).

    Raises:
        InvalidPackageError: If package ID is not found
    """
    package = PACKAGE_LOOKUP.get(str(package_id).upper())
    if not package:
        raise InvalidPackageError(
            f"Invalid package ID: {package_id}. "
            f"Valid packages: {', '.join(PACKAGE_LOOKUP.keys())}"
        )
    return package


def get_package_price(package: TokenPackage, currency: Currency) -> Optional[Decimal]:
    """Net price of a fixed package in ``currency``; None for the custom package."""
    if package.tokens is None:
        return None
    price = Decimal(package.tokens) / TOKEN_RATES[currency]
    return price.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def calculate_tokens_from_amount(amount: Decimal, currency: Currency) -> int:
    """Tokens bought by ``amount`` of ``currency``, rounded down to a multiple of 10."""
    if amount <= 0:
        return 0
    tokens = Decimal(amount) * TOKEN_RATES[currency] + Decimal("0.01")
    return int(tokens // TOKEN_ROUNDING_STEP) * TOKEN_ROUNDING_STEP


class TopupService:
    """Simulated checkout on top of the token ledger."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.token_service = TokenService(db)

    @staticmethod
    def get_packages() -> list[TokenPackage]:
        return TOKEN_PACKAGES.copy()

    async def purchase(
        self,
        user_id: int,
        package_id: str,
        currency: Currency = Currency.EUR,
        amount: Optional[Decimal] = None,
        reference: Optional[str] = None,
    ) -> tuple[TokenTransaction, int]:
        """Credit a package (or a custom amount) to the user.

        Args:
            user_id: Buyer
            package_id: STARTER, POPULAR, PRO or ENTERPRISE
            currency: Currency the price is expressed in
            amount: Net amount paid; required for ENTERPRISE
            reference: Checkout reference; retries with the same reference
                credit only once

        Returns:
            Tuple of (ledger row, new balance)
        """
        package = get_package(package_id)

        if package.id == CUSTOM_PACKAGE_ID:
            if amount is None or amount <= 0:
                raise ValidationError("A positive amount is required for a custom top-up")
            tokens = calculate_tokens_from_amount(amount, currency)
            price = Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        else:
            tokens = package.tokens
            price = get_package_price(package, currency)

        if tokens <= 0:
            raise ValidationError("Amount is too small to buy any tokens")

        reference = reference or f"sim_{uuid.uuid4().hex}"
        transaction = await self.token_service.record_topup(
            user_id=user_id,
            amount=tokens,
            external_ref=reference,
            meta={
                "reason": "topup",
                "package_id": package.id,
                "package_name": package.name,
                "price": str(price),
                "currency": currency.value,
                "tokens_credited": tokens,
                "method": "simulated_checkout",
                "processed_at": utcnow().isoformat(),
            },
        )
        new_balance = await self.token_service.get_user_balance(user_id)

        logger.info(
            f"Top-up {reference}: {package.id} {price} {currency.value} "
            f"-> {tokens} tokens for user {user_id}"
        )
        return transaction, new_balance


def get_topup_service(db: AsyncSession) -> TopupService:
    return TopupService(db)

"""Pydantic schemas for token API endpoints.

This module defines request and response models for:
- Token balance queries
- Transaction history
- Top-up packages and the simulated checkout
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from app.core.database import as_utc
from app.models.transaction import TransactionType


class Currency(str, enum.Enum):
    EUR = "EUR"
    GBP = "GBP"
    USD = "USD"


class TokenBalanceResponse(BaseModel):
    """Response model for token balance queries."""

    balance: int = Field(description="Sum of all ledger amounts for the user")


class TransactionResponse(BaseModel):
    """Response model for a single ledger row."""

    id: int = Field(description="Transaction ID")
    type: TransactionType = Field(description="topup or spend")
    amount: int = Field(description="Signed token amount (positive=topup, negative=spend)")
    meta: Optional[dict] = Field(default=None, description="Reason and context")
    created_at: datetime = Field(description="Transaction timestamp")

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    class Config:
        from_attributes = True


class TransactionHistoryResponse(BaseModel):
    """Response model for transaction history queries."""

    transactions: list[TransactionResponse] = Field(description="List of transactions")
    total: int = Field(description="Total number of transactions")
    limit: int = Field(description="Page size limit")
    offset: int = Field(description="Current offset")


class TokenPackage(BaseModel):
    """A purchasable token package. ``tokens`` is None for the custom amount package."""

    id: str = Field(description="Package identifier")
    name: str = Field(description="Display name")
    tokens: Optional[int] = Field(default=None, description="Tokens credited")
    popular: bool = Field(default=False, description="Highlighted package")


class TokenPackageResponse(TokenPackage):
    prices: dict[Currency, Optional[Decimal]] = Field(
        description="Net price per currency (null for the custom package)"
    )


class TopupRequest(BaseModel):
    """Request model for a simulated checkout."""

    package_id: str = Field(description="STARTER, POPULAR, PRO or ENTERPRISE")
    currency: Currency = Field(default=Currency.EUR, description="Checkout currency")
    amount: Optional[Decimal] = Field(
        default=None, gt=0, description="Net amount for the custom (ENTERPRISE) package"
    )
    reference: Optional[str] = Field(
        default=None,
        max_length=255,
        description="Checkout reference; repeating it does not credit twice",
    )


class TopupResponse(BaseModel):
    success: bool = True
    transaction_id: int
    tokens_added: int
    new_balance: int
    package_id: str
    price: Decimal
    currency: Currency

"""API routes for token management.

This module provides REST endpoints for:
- GET /api/v1/tokens/balance - Get current balance
- GET /api/v1/tokens/history - Get transaction history
- GET /api/v1/tokens/packages - List top-up packages with prices
- POST /api/v1/tokens/topup - Simulated checkout
"""

import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user, get_db
from app.core.exceptions import ServiceError
from app.models.transaction import TransactionType
from app.models.user import User
from app.schemas.token import (
    Currency,
    TokenBalanceResponse,
    TokenPackageResponse,
    TopupRequest,
    TopupResponse,
    TransactionHistoryResponse,
    TransactionResponse,
)
from app.services.token_service import get_token_service
from app.services.topup_service import TopupService, get_package_price, get_topup_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tokens", tags=["tokens"])


@router.get(
    "/balance",
    response_model=TokenBalanceResponse,
    summary="Get token balance",
    description="Get the current token balance for the authenticated user",
)
async def get_balance(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TokenBalanceResponse:
    token_service = get_token_service(db)
    balance = await token_service.get_user_balance(current_user.id)
    return TokenBalanceResponse(balance=balance)


@router.get(
    "/history",
    response_model=TransactionHistoryResponse,
    summary="Get transaction history",
    description="Get paginated transaction history for the authenticated user",
)
async def get_history(
    transaction_type: Optional[TransactionType] = Query(
        default=None,
        description="Filter by transaction type",
    ),
    limit: int = Query(
        default=20,
        ge=1,
        le=100,
        description="Maximum number of transactions to return",
    ),
    offset: int = Query(
        default=0,
        ge=0,
        description="Offset for pagination",
    ),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TransactionHistoryResponse:
    """Get transaction history for the current user, newest first.

    Args:
        transaction_type: Optional filter (topup or spend)
        limit: Maximum transactions to return (1-100)
        offset: Pagination offset
    """
    token_service = get_token_service(db)
    transactions, total = await token_service.get_transaction_history(
        user_id=current_user.id,
        limit=limit,
        offset=offset,
        transaction_type=transaction_type,
    )

    return TransactionHistoryResponse(
        transactions=[TransactionResponse.model_validate(tx) for tx in transactions],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/packages",
    response_model=list[TokenPackageResponse],
    summary="List token packages",
    description="Top-up packages with their net price in every supported currency",
)
async def list_packages() -> list[TokenPackageResponse]:
    return [
        TokenPackageResponse(
            **package.model_dump(),
            prices={currency: get_package_price(package, currency) for currency in Currency},
        )
        for package in TopupService.get_packages()
    ]


@router.post(
    "/topup",
    response_model=TopupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Top up tokens",
    description="Simulated checkout: credits a package or a custom amount",
)
async def topup(
    request: TopupRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TopupResponse:
    """Credit tokens to the current user.

    Raises:
        HTTPException(400): Unknown package or missing custom amount
    """
    user_id = current_user.id
    topup_service = get_topup_service(db)
    try:
        transaction, new_balance = await topup_service.purchase(
            user_id=user_id,
            package_id=request.package_id,
            currency=request.currency,
            amount=request.amount,
            reference=request.reference,
        )
    except ServiceError as e:
        logger.info(f"Top-up rejected for user {user_id}: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())

    return TopupResponse(
        transaction_id=transaction.id,
        tokens_added=transaction.amount,
        new_balance=new_balance,
        package_id=transaction.meta["package_id"],
        price=Decimal(transaction.meta["price"]),
        currency=Currency(transaction.meta["currency"]),
    )

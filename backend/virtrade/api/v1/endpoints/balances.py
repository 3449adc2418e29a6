"""
Virtual Trading - Balance Endpoints

Balances, deposits, transfers to bank and bank account registration.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from virtrade.core.accounts import BankAccountService
from virtrade.core.trading.ledger import BalanceLedger, BalanceView, Subaccount
from virtrade.dependencies import get_bank_account_service, get_current_email, get_ledger

router = APIRouter()


# ==================== SCHEMAS ====================

class BalanceResponse(BaseModel):
    currency: str
    trading_amount: Decimal
    non_trading_amount: Decimal
    total_amount: Decimal

    @classmethod
    def from_view(cls, view: BalanceView) -> "BalanceResponse":
        return cls(
            currency=view.currency,
            trading_amount=view.trading_amount,
            non_trading_amount=view.non_trading_amount,
            total_amount=view.total_amount,
        )


class DepositRequest(BaseModel):
    currency: str = Field(..., min_length=3, max_length=3)
    amount: Decimal = Field(..., decimal_places=4, description="Amount to deposit, greater than zero")
    subaccount: Subaccount = Field(Subaccount.TRADING)


class TransferRequest(BaseModel):
    currency: str = Field(..., min_length=3, max_length=3)
    amount: Decimal = Field(..., ge=0, decimal_places=4)
    bank_account_id: int


class TransferResponse(BaseModel):
    currency: str
    amount: Decimal
    bank_account_id: int
    non_trading_amount: Decimal
    description: str


class AuditEntryResponse(BaseModel):
    currency: str
    description: str
    amount: Optional[Decimal] = None
    transaction_date: datetime

    model_config = {"from_attributes": True}


class HistoryResponse(BaseModel):
    account_transactions: list[AuditEntryResponse]
    bank_transactions: list[AuditEntryResponse]


class BankAccountRequest(BaseModel):
    currency: str = Field(..., min_length=3, max_length=3)
    bank_name: str = Field(..., min_length=1, max_length=255)
    bank_account_number: str = Field(..., min_length=1, max_length=64)


class BankAccountResponse(BaseModel):
    id: int
    currency: str
    bank_name: str
    bank_account_number: str
    in_use: bool

    model_config = {"from_attributes": True}


# ==================== ENDPOINTS ====================

@router.get("", response_model=list[BalanceResponse])
async def list_balances(
    email: str = Depends(get_current_email),
    ledger: BalanceLedger = Depends(get_ledger),
):
    """Balances of the caller in every currency used."""
    return [BalanceResponse.from_view(view) for view in await ledger.list_balances(email)]


@router.get("/history", response_model=HistoryResponse)
async def history(
    email: str = Depends(get_current_email),
    ledger: BalanceLedger = Depends(get_ledger),
):
    """Audit trail of balance and bank account events."""
    account_txns, bank_txns = await ledger.history(email)
    return HistoryResponse(
        account_transactions=[AuditEntryResponse.model_validate(t) for t in account_txns],
        bank_transactions=[AuditEntryResponse.model_validate(t) for t in bank_txns],
    )


@router.post("/deposit", response_model=BalanceResponse)
async def deposit(
    request: DepositRequest,
    email: str = Depends(get_current_email),
    ledger: BalanceLedger = Depends(get_ledger),
):
    """Deposit funds in an active currency."""
    await ledger.deposit(email, request.currency, request.amount, request.subaccount)
    return BalanceResponse.from_view(await ledger.get_balance(email, request.currency))


@router.post("/transfer", response_model=TransferResponse)
async def transfer_to_bank(
    request: TransferRequest,
    email: str = Depends(get_current_email),
    ledger: BalanceLedger = Depends(get_ledger),
):
    """Transfer non-trading funds to a registered bank account."""
    result = await ledger.transfer_to_bank(email, request.currency, request.amount, request.bank_account_id)
    return TransferResponse(
        currency=result.currency,
        amount=result.amount,
        bank_account_id=result.bank_account_id,
        non_trading_amount=result.non_trading_amount,
        description=result.description,
    )


@router.get("/bank-accounts", response_model=list[BankAccountResponse])
async def list_bank_accounts(
    email: str = Depends(get_current_email),
    service: BankAccountService = Depends(get_bank_account_service),
):
    return await service.list(email)


@router.post("/bank-accounts", response_model=BankAccountResponse, status_code=status.HTTP_201_CREATED)
async def add_bank_account(
    request: BankAccountRequest,
    email: str = Depends(get_current_email),
    service: BankAccountService = Depends(get_bank_account_service),
):
    """Register a bank account; it replaces the one in use for the currency."""
    return await service.add(email, request.currency, request.bank_name, request.bank_account_number)

"""Bot account endpoints: configured accounts, rotation usage, health."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ig_scraper.api.deps import get_ledger, require_api_key
from ig_scraper.services import AccountLedger

router = APIRouter(tags=["accounts"], dependencies=[Depends(require_api_key)])


@router.get("/accounts")
async def list_accounts(ledger: AccountLedger = Depends(get_ledger)) -> dict:
    """Configured account usernames (never passwords)."""
    return {"total": ledger.account_count, "accounts": ledger.list_accounts()}


@router.get("/accounts/stats")
async def rotation_stats(ledger: AccountLedger = Depends(get_ledger)) -> dict:
    return ledger.rotation_stats()


@router.get("/accounts/status")
async def account_status(ledger: AccountLedger = Depends(get_ledger)) -> dict:
    """Per-account health: active flag, last success/failure, failure reason."""
    return ledger.status()

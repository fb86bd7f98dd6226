"""AccountLedger: bot account rotation and health for the scraper.

Provides:
- select_least_used(excluding): Pick the account with the lowest usage count
- select_round_robin(): Advance the rotation cursor
- report_outcome(username, success, reason): Update health, quarantine if needed

State lives in one JSON file so it survives restarts.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ig_scraper.models.account import Account, AccountHealth, RotationState

logger = logging.getLogger(__name__)

MAX_CONSECUTIVE_FAILURES = 3
CRITICAL_KEYWORDS = ("challenge", "suspended", "banned", "disabled", "inhabilitada")


def _now_s() -> int:
    return int(time.time())


def _now_ms() -> int:
    return int(time.time() * 1000)


def _iso(ts: float | None) -> str | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def apply_outcome(
    health: AccountHealth, success: bool, reason: str | None = None,
) -> AccountHealth:
    """Return the health record after one scrape outcome."""
    now = _now_s()
    if success:
        return health.model_copy(update={
            "is_active": True,
            "last_success": now,
            "failure_reason": None,
            "consecutive_failures": 0,
        })

    reason = reason or "Unknown error"
    failures = health.consecutive_failures + 1
    critical = any(k in reason.lower() for k in CRITICAL_KEYWORDS)
    return health.model_copy(update={
        "is_active": health.is_active and not (
            failures >= MAX_CONSECUTIVE_FAILURES or critical
        ),
        "last_failure": now,
        "failure_reason": reason,
        "consecutive_failures": failures,
    })


class RotationStore:
    """Whole-file JSON persistence for ``RotationState``."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> RotationState:
        """Load state; a missing or unreadable file yields defaults."""
        if not self.path.exists():
            return RotationState()
        try:
            return RotationState.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError, ValueError) as e:
            logger.warning("Could not load rotation state from %s: %s", self.path, e)
            return RotationState()

    def save(self, state: RotationState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = state.model_dump(mode="json", by_alias=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")


class AccountLedger:
    """Rotation and health bookkeeping for the configured bot accounts."""

    def __init__(
        self,
        accounts: list[Account],
        store: RotationStore,
        sessions_root: str | Path,
        skip_inactive: bool = False,
    ) -> None:
        self._accounts = list(accounts)
        self._store = store
        self._sessions_root = Path(sessions_root)
        self._skip_inactive = skip_inactive
        self._lock = asyncio.Lock()
        self._state = store.load()
        logger.info(
            "Account ledger loaded: %d account(s), cursor=%d",
            len(self._accounts), self._state.last_used_index,
        )

    @property
    def accounts(self) -> list[Account]:
        return list(self._accounts)

    @property
    def account_count(self) -> int:
        return len(self._accounts)

    def list_accounts(self) -> list[str]:
        return [a.username for a in self._accounts]

    def health(self, username: str) -> AccountHealth:
        return self._state.account_status.get(username) or AccountHealth()

    def usage_count(self, username: str) -> int:
        return self._state.usage_count.get(username, 0)

    def session_key_for(self, account: Account) -> str:
        """Profile directory for ``account``; created if missing."""
        path = self._sessions_root / "instagram" / account.session_name
        path.mkdir(parents=True, exist_ok=True)
        return str(path)

    # ──────────────────────────────────────
    # Selection
    # ──────────────────────────────────────

    async def select_least_used(
        self, excluding: Iterable[str] = (),
    ) -> Account | None:
        """Pick the least-used account not in ``excluding``.

        Ties go to configuration order. Returns None when every account is
        excluded (or quarantined, with ``skip_inactive``).
        """
        excluded = set(excluding)
        async with self._lock:
            candidates = [
                a for a in self._accounts
                if a.username not in excluded
                and not (self._skip_inactive and not self.health(a.username).is_active)
            ]
            if not candidates:
                return None

            best = min(candidates, key=lambda a: self.usage_count(a.username))
            self._mark_used(best)
            self._persist()

        logger.info(
            "Selected account %s (usage=%d, excluded=%d)",
            best.username, self.usage_count(best.username), len(excluded),
        )
        return best

    async def select_round_robin(self) -> Account | None:
        """Advance the rotation cursor and return the account under it."""
        async with self._lock:
            if not self._accounts:
                return None
            index = (self._state.last_used_index + 1) % len(self._accounts)
            account = self._accounts[index]
            self._state.last_used_index = index
            self._mark_used(account)
            self._persist()

        logger.info(
            "Rotated to account %s (%d/%d)", account.username, index + 1, len(self._accounts),
        )
        return account

    def current_account(self) -> Account | None:
        """Account under the rotation cursor, without advancing it."""
        if not self._accounts:
            return None
        index = self._state.last_used_index
        if index < 0 or index >= len(self._accounts):
            return self._accounts[0]
        return self._accounts[index]

    def _mark_used(self, account: Account) -> None:
        name = account.username
        self._state.usage_count[name] = self._state.usage_count.get(name, 0) + 1
        self._state.last_used_timestamps[name] = _now_ms()

    # ──────────────────────────────────────
    # Health
    # ──────────────────────────────────────

    async def report_outcome(
        self, username: str, success: bool, reason: str | None = None,
    ) -> AccountHealth:
        """Record a scrape outcome for ``username`` and persist it."""
        async with self._lock:
            before = self.health(username)
            after = apply_outcome(before, success, reason)
            self._state.account_status[username] = after
            self._persist()

        if not success:
            if before.is_active and not after.is_active:
                logger.warning(
                    "Account %s quarantined after %d failure(s). Reason: %s",
                    username, after.consecutive_failures, after.failure_reason,
                )
            else:
                logger.warning(
                    "Account %s failed (%d/%d). Reason: %s",
                    username, after.consecutive_failures,
                    MAX_CONSECUTIVE_FAILURES, after.failure_reason,
                )
        return after

    def _persist(self) -> None:
        try:
            self._store.save(self._state)
        except OSError as e:
            logger.error("Failed to persist rotation state: %s", e)

    # ──────────────────────────────────────
    # Reporting
    # ──────────────────────────────────────

    def status(self) -> dict[str, Any]:
        """Health report for ``/accounts/status``."""
        accounts = []
        for a in self._accounts:
            h = self.health(a.username)
            accounts.append({
                "username": a.username,
                "isActive": h.is_active,
                "lastSuccess": _iso(h.last_success),
                "lastFailure": _iso(h.last_failure),
                "failureReason": h.failure_reason,
                "consecutiveFailures": h.consecutive_failures,
            })
        active = sum(1 for a in accounts if a["isActive"])
        return {
            "totalAccounts": len(accounts),
            "activeAccounts": active,
            "inactiveAccounts": len(accounts) - active,
            "accounts": accounts,
        }

    def rotation_stats(self) -> dict[str, Any]:
        """Usage report for ``/accounts/stats``."""
        current = self.current_account()
        stats = []
        for a in self._accounts:
            last_used = self._state.last_used_timestamps.get(a.username)
            stats.append({
                "username": a.username,
                "usageCount": self.usage_count(a.username),
                "lastUsed": _iso(last_used / 1000) if last_used else None,
            })
        return {
            "totalAccounts": len(self._accounts),
            "currentAccount": current.username if current else None,
            "stats": stats,
        }

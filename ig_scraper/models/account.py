"""Bot account models and the persisted rotation/health state.

The rotation state file is shared with earlier deployments, so every model
here serialises with camelCase keys and tolerates missing or unknown fields.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, SecretStr
from pydantic.alias_generators import to_camel

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


class Account(BaseModel):
    """A bot account used to browse Instagram.

    Read-only at runtime. The password is a ``SecretStr`` so it never ends up
    in logs or API responses by accident.
    """

    model_config = ConfigDict(frozen=True)

    username: str
    password: SecretStr

    @property
    def session_name(self) -> str:
        """Filesystem-safe directory name derived from the username."""
        return _UNSAFE_CHARS.sub("_", self.username)


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class AccountHealth(_CamelModel):
    """Per-account health, updated after every scrape attempt.

    Timestamps are unix seconds.
    """

    is_active: bool = True
    last_success: int | None = None
    last_failure: int | None = None
    failure_reason: str | None = None
    consecutive_failures: int = 0


class RotationState(_CamelModel):
    """Process-wide rotation cursor, usage counters and health ledger.

    ``last_used_timestamps`` are epoch milliseconds. ``usage_count`` values
    only ever grow; the file has to be deleted to reset them.
    """

    last_used_index: int = -1
    last_used_timestamps: dict[str, int] = Field(default_factory=dict)
    usage_count: dict[str, int] = Field(default_factory=dict)
    account_status: dict[str, AccountHealth] = Field(default_factory=dict)

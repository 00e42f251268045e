"""Cached provider tokens."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class TokenRecord:
    """Token issued by a provider for one tenant.

    ``expires_at`` already has the safety buffer subtracted, so a record is
    treated as expired slightly before the provider would reject it.
    Records are never mutated; use ``with_extras`` to derive a new one.
    """
    provider: str
    tenant_id: str
    access_token: str
    issued_at: datetime
    expires_at: datetime
    refresh_token: Optional[str] = None
    refresh_expires_at: Optional[datetime] = None
    token_type: str = "Bearer"
    extras: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def issue(
        cls,
        provider: str,
        tenant_id: str,
        access_token: str,
        lifetime_seconds: float,
        buffer_seconds: float = 60,
        refresh_token: Optional[str] = None,
        refresh_lifetime_seconds: Optional[float] = None,
        token_type: str = "Bearer",
        extras: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> "TokenRecord":
        """Create a record for a token that was just obtained."""
        now = now or utcnow()
        usable = max(float(lifetime_seconds) - float(buffer_seconds), 0.0)
        refresh_expires_at = None
        if refresh_token and refresh_lifetime_seconds:
            refresh_expires_at = now + timedelta(seconds=max(refresh_lifetime_seconds - buffer_seconds, 0))
        return cls(
            provider=provider,
            tenant_id=tenant_id,
            access_token=access_token,
            issued_at=now,
            expires_at=now + timedelta(seconds=usable),
            refresh_token=refresh_token,
            refresh_expires_at=refresh_expires_at,
            token_type=token_type,
            extras=dict(extras or {}),
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def can_refresh(self, now: Optional[datetime] = None) -> bool:
        if not self.refresh_token:
            return False
        if self.refresh_expires_at is None:
            return True
        return (now or utcnow()) < self.refresh_expires_at

    def remaining_seconds(self, now: Optional[datetime] = None) -> float:
        """Seconds the record should stay in the store."""
        now = now or utcnow()
        horizon = self.expires_at
        if self.refresh_token:
            horizon = max(horizon, self.refresh_expires_at or self.expires_at + timedelta(days=30))
        return max((horizon - now).total_seconds(), 0.0)

    @property
    def authorization_header(self) -> str:
        return f"{self.token_type} {self.access_token}"

    def with_extras(self, **extras) -> "TokenRecord":
        merged = dict(self.extras)
        merged.update(extras)
        return replace(self, extras=merged)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "tenant_id": self.tenant_id,
            "access_token": self.access_token,
            "issued_at": self.issued_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "refresh_token": self.refresh_token,
            "refresh_expires_at": self.refresh_expires_at.isoformat() if self.refresh_expires_at else None,
            "token_type": self.token_type,
            "extras": self.extras,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenRecord":
        return cls(
            provider=data["provider"],
            tenant_id=data["tenant_id"],
            access_token=data["access_token"],
            issued_at=_parse_ts(data["issued_at"]),
            expires_at=_parse_ts(data["expires_at"]),
            refresh_token=data.get("refresh_token"),
            refresh_expires_at=_parse_ts(data.get("refresh_expires_at")),
            token_type=data.get("token_type", "Bearer"),
            extras=data.get("extras") or {},
        )

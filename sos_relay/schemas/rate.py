"""Pydantic schemas for the rate limiter boundary."""

from __future__ import annotations

from pydantic import BaseModel, Field

from sos_relay.adapters.rate_limit.base import RateLimitResult


class RateCheckResponse(BaseModel):
    """Wire form of a rate limit decision."""

    allowed: bool
    retry_after: int = Field(..., ge=0, description="Seconds to wait before retrying.")

    @classmethod
    def from_result(cls, result: RateLimitResult) -> "RateCheckResponse":
        return cls(allowed=result.allowed, retry_after=result.retry_after_seconds)


class RateResetResponse(BaseModel):
    status: str = "ok"

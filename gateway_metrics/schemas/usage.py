"""
Pydantic v2 records for usage telemetry.

Separation:
  • DiagnosticEvent: what the gateway PUSHES (camelCase, loosely shaped).
  • UsageEvent:      what the pipeline STORES, one explicit field per column.

Default-on-absence policy lives on UsageEvent, not at call sites:
  • raw columns keep None (stored as NULL);
  • rollup accumulators read 0 / 0.0;
  • rollup dimension keys read "".
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

# The only diagnostic event kind the pipeline consumes.
USAGE_EVENT_TYPE = "model.usage"


# ── Inbound (external) shape ────────────────────────────────
class _InboundModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class UsageCounts(_InboundModel):
    input: int | None = None
    output: int | None = None
    cache_read: int | None = None
    cache_write: int | None = None
    prompt_tokens: int | None = None
    total: int | None = None


class ContextWindow(_InboundModel):
    limit: int | None = None
    used: int | None = None


class DiagnosticEvent(_InboundModel):
    """
    A push notification from the gateway's diagnostic bus.

    Only ``type`` is required; events of any other kind than
    USAGE_EVENT_TYPE are ignored by the collector.
    """

    type: str
    channel: str | None = None
    provider: str | None = None
    model: str | None = None
    session_key: str | None = None
    session_id: str | None = None
    usage: UsageCounts | None = None
    cost_usd: float | None = None
    duration_ms: int | None = None
    context: ContextWindow | None = None

    @property
    def is_usage(self) -> bool:
        return self.type == USAGE_EVENT_TYPE


# ── Stored record ───────────────────────────────────────────
class UsageEvent(BaseModel):
    """
    One LLM call as written to usage_events.

    Only ``ts`` is guaranteed; every other field may be None.
    """

    model_config = ConfigDict(frozen=True)

    ts: datetime
    gateway_id: str | None = None
    channel: str | None = None
    provider: str | None = None
    model: str | None = None
    session_key: str | None = None
    session_id: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    cache_read_tokens: int | None = None
    cache_write_tokens: int | None = None
    prompt_tokens: int | None = None
    total_tokens: int | None = None
    cost_usd: float | None = None
    duration_ms: int | None = None
    context_limit: int | None = None
    context_used: int | None = None

    @classmethod
    def from_diagnostic(
        cls,
        event: DiagnosticEvent,
        gateway_id: str,
        ts: datetime,
    ) -> UsageEvent:
        """Map a diagnostic event, tagging it with the local gateway and time."""
        usage = event.usage or UsageCounts()
        context = event.context or ContextWindow()
        return cls(
            ts=ts,
            gateway_id=gateway_id,
            channel=event.channel,
            provider=event.provider,
            model=event.model,
            session_key=event.session_key,
            session_id=event.session_id,
            input_tokens=usage.input,
            output_tokens=usage.output,
            cache_read_tokens=usage.cache_read,
            cache_write_tokens=usage.cache_write,
            prompt_tokens=usage.prompt_tokens,
            total_tokens=usage.total,
            cost_usd=event.cost_usd,
            duration_ms=event.duration_ms,
            context_limit=context.limit,
            context_used=context.used,
        )

    @property
    def rollup_key(self) -> tuple[str, str]:
        """(gateway_id, model) with absent values as ''."""
        return self.gateway_id or "", self.model or ""

    def rollup_values(self) -> dict[str, Any]:
        """Accumulator increments with absent values as zero."""
        return {
            "input_tokens": self.input_tokens or 0,
            "output_tokens": self.output_tokens or 0,
            "total_tokens": self.total_tokens or 0,
            "cost_usd": self.cost_usd or 0.0,
        }

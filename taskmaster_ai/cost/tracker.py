"""
Usage Telemetry

Computes the cost of a successful orchestration run from the model cost
table and delivers one usage record per run to a telemetry sink.
"""

from collections import defaultdict, deque
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Callable, Deque, Dict, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from taskmaster_ai.config.catalog import ModelSpec, lookup_model_spec
from taskmaster_ai.observability import get_logger, increment_counter
from taskmaster_ai.providers.interfaces import CallerContext, ProviderId, TokenUsage

if TYPE_CHECKING:  # pragma: no cover - typing only
    from taskmaster_ai.llm.models import Attempt

logger = get_logger(__name__)

COST_QUANTUM = Decimal("0.000001")
_PER_MILLION = Decimal(1_000_000)


def calculate_cost(
    pricing: Optional[ModelSpec],
    input_tokens: int,
    output_tokens: int,
) -> Decimal:
    """
    Cost in USD for one call, quantised to 6 decimal places.

    ``in / 1e6 * input_price + out / 1e6 * output_price``; missing pricing
    costs nothing.

    Example:
        >>> calculate_cost(ModelSpec(input=3.0, output=15.0), 1000, 2000)
        Decimal('0.033000')
    """
    if pricing is None:
        return Decimal(0).quantize(COST_QUANTUM)
    input_cost = Decimal(input_tokens) / _PER_MILLION * Decimal(str(pricing.input))
    output_cost = Decimal(output_tokens) / _PER_MILLION * Decimal(str(pricing.output))
    return (input_cost + output_cost).quantize(COST_QUANTUM, rounding=ROUND_HALF_UP)


class UsageRecord(BaseModel):
    """
    Telemetry for one successful orchestration run.

    Attributes:
        timestamp: When the run succeeded (UTC)
        caller_id: Caller/user identifier
        command_name: Command that triggered the run
        provider_id: Provider of the successful attempt
        model_id: Model of the successful attempt
        role: Role of the successful attempt
        input_tokens: Input tokens used
        output_tokens: Output tokens generated
        total_tokens: Total tokens
        total_cost: Cost in ``currency``, 6 decimal places
        currency: Always "USD"
        processing_time_ms: Wall time from run start to success
        output_type: 'cli' or 'mcp'
    """

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Timestamp (UTC)",
    )
    caller_id: str = Field(..., description="Caller identifier")
    command_name: str = Field(..., description="Invoking command")
    provider_id: str = Field(..., description="Provider name")
    model_id: str = Field(..., description="Model identifier")
    role: Optional[str] = Field(None, description="Role that succeeded")
    input_tokens: int = Field(..., description="Input tokens", ge=0)
    output_tokens: int = Field(..., description="Output tokens", ge=0)
    total_tokens: int = Field(..., description="Total tokens", ge=0)
    total_cost: Decimal = Field(..., description="Cost", ge=0)
    currency: str = Field("USD", description="Currency")
    processing_time_ms: int = Field(..., description="Run wall time (ms)", ge=0)
    output_type: str = Field("cli", description="Output surface")

    model_config = ConfigDict(frozen=True, protected_namespaces=())


@runtime_checkable
class TelemetrySink(Protocol):
    """Receiver for usage records (fire-and-forget)."""

    def record(self, usage_record: UsageRecord) -> None:
        ...


class UsageReport(BaseModel):
    """
    Aggregated usage over a set of records.

    Example:
        >>> report = sink.get_report()
        >>> print(f"Total: ${report.total_cost}")
    """

    total_cost: Decimal = Field(Decimal("0"), description="Total cost USD", ge=0)
    total_tokens: int = Field(0, description="Total tokens", ge=0)
    call_count: int = Field(0, description="Number of runs", ge=0)
    by_provider: Dict[str, Decimal] = Field(default_factory=dict, description="Cost by provider")
    by_model: Dict[str, Decimal] = Field(default_factory=dict, description="Cost by model")
    by_caller: Dict[str, Decimal] = Field(default_factory=dict, description="Cost by caller")
    records: List[UsageRecord] = Field(default_factory=list, description="Individual records")


class InMemoryUsageSink:
    """
    Keep usage records in memory and aggregate them on demand.

    Holds at most ``max_records`` records; the oldest are dropped first.

    Thread-safe: This implementation is not thread-safe. If used in
    multi-threaded contexts, external synchronization is required.

    Example:
        >>> sink = InMemoryUsageSink()
        >>> emitter = TelemetryEmitter(sink=sink)
        >>> report = sink.get_report(caller_id="user-42")
    """

    def __init__(self, max_records: int = 10_000):
        self._records: Deque[UsageRecord] = deque(maxlen=max_records)

    def record(self, usage_record: UsageRecord) -> None:
        self._records.append(usage_record)

    @property
    def records(self) -> List[UsageRecord]:
        return list(self._records)

    def get_report(self, caller_id: Optional[str] = None) -> UsageReport:
        """
        Aggregate stored records.

        Args:
            caller_id: Restrict to one caller (None for all records)
        """
        records = [r for r in self._records if caller_id is None or r.caller_id == caller_id]
        if not records:
            return UsageReport()

        by_provider: Dict[str, Decimal] = defaultdict(Decimal)
        by_model: Dict[str, Decimal] = defaultdict(Decimal)
        by_caller: Dict[str, Decimal] = defaultdict(Decimal)
        for record in records:
            by_provider[record.provider_id] += record.total_cost
            by_model[f"{record.provider_id}/{record.model_id}"] += record.total_cost
            by_caller[record.caller_id] += record.total_cost

        return UsageReport(
            total_cost=sum((r.total_cost for r in records), Decimal("0")),
            total_tokens=sum(r.total_tokens for r in records),
            call_count=len(records),
            by_provider=dict(by_provider),
            by_model=dict(by_model),
            by_caller=dict(by_caller),
            records=records,
        )

    def clear(self) -> None:
        self._records.clear()


PricingLookup = Callable[[ProviderId, str], Optional[ModelSpec]]


class TelemetryEmitter:
    """
    Build and deliver the usage record of a successful run.

    Cost lookup is pure: the same provider, model and token counts always
    produce the same ``total_cost``. Delivery problems are logged and never
    raised to the caller.

    Example:
        >>> emitter = TelemetryEmitter(sink=InMemoryUsageSink())
        >>> record = emitter.emit(context, attempt, usage, processing_time_ms=840)
        >>> record.total_cost
        Decimal('0.004500')
    """

    def __init__(
        self,
        sink: Optional[TelemetrySink] = None,
        pricing_lookup: Optional[PricingLookup] = None,
        default_user_id: Optional[str] = None,
    ):
        """
        Initialize emitter.

        Args:
            sink: Destination for records (defaults to the global in-memory sink)
            pricing_lookup: ``(provider_id, model_id) -> ModelSpec | None``;
                defaults to the built-in catalog
            default_user_id: Caller id used when the context carries none
        """
        self._sink = sink if sink is not None else get_usage_sink()
        self._pricing_lookup = pricing_lookup or lookup_model_spec
        self._default_user_id = default_user_id

    def emit(
        self,
        caller_context: CallerContext,
        successful_attempt: "Attempt",
        usage: TokenUsage,
        processing_time_ms: int,
        *,
        default_user_id: Optional[str] = None,
        pricing_lookup: Optional[PricingLookup] = None,
    ) -> UsageRecord:
        """
        Price ``usage`` and deliver a record to the sink.

        Args:
            caller_context: Context of the run
            successful_attempt: Attempt that produced the result
            usage: Token usage of that attempt
            processing_time_ms: Wall time from run start to success
            default_user_id: Per-call fallback caller id (overrides the
                emitter default)
            pricing_lookup: Per-call pricing source (e.g. a project config
                with cost overrides); overrides the emitter default

        Returns:
            The delivered UsageRecord
        """
        provider_id = ProviderId(successful_attempt.provider_id)
        model_id = successful_attempt.model_id
        pricing = (pricing_lookup or self._pricing_lookup)(provider_id, model_id)
        if pricing is None:
            logger.warning(
                "model_cost_unknown",
                provider=provider_id.value,
                model=model_id,
            )

        total_cost = calculate_cost(pricing, usage.input_tokens, usage.output_tokens)
        caller_id = (
            caller_context.caller_id
            or default_user_id
            or self._default_user_id
            or "unknown"
        )

        record = UsageRecord(
            caller_id=caller_id,
            command_name=caller_context.command_name,
            provider_id=provider_id.value,
            model_id=model_id,
            role=getattr(successful_attempt.role, "value", successful_attempt.role),
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            total_tokens=usage.total_tokens,
            total_cost=total_cost,
            processing_time_ms=max(int(processing_time_ms), 0),
            output_type=caller_context.output_type,
        )

        increment_counter("cost_usd_total", float(total_cost), labels={"provider": provider_id.value})
        increment_counter(
            "llm_tokens_total",
            usage.input_tokens,
            labels={"provider": provider_id.value, "token_type": "input"},
        )
        increment_counter(
            "llm_tokens_total",
            usage.output_tokens,
            labels={"provider": provider_id.value, "token_type": "output"},
        )

        try:
            self._sink.record(record)
        except Exception as exc:
            logger.warning(
                "telemetry_sink_failed",
                provider=provider_id.value,
                model=model_id,
                error=str(exc),
                exc_info=True,
            )

        logger.info(
            "usage_recorded",
            provider=provider_id.value,
            model=model_id,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            total_cost=str(total_cost),
            processing_time_ms=record.processing_time_ms,
        )
        return record


# Global usage sink singleton
_global_sink: Optional[InMemoryUsageSink] = None


def get_usage_sink() -> InMemoryUsageSink:
    """
    Get the global in-memory usage sink.

    Example:
        >>> report = get_usage_sink().get_report()
    """
    global _global_sink
    if _global_sink is None:
        _global_sink = InMemoryUsageSink()
    return _global_sink


__all__ = [
    "COST_QUANTUM",
    "calculate_cost",
    "UsageRecord",
    "UsageReport",
    "TelemetrySink",
    "InMemoryUsageSink",
    "TelemetryEmitter",
    "get_usage_sink",
]

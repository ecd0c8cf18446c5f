"""
Role-based orchestrator that drives one request across providers.

Walks an ordered role sequence, skips roles whose provider has no usable
credentials, retries retryable failures with backoff inside a role and
escalates to the next role when a role is exhausted. Attempts within a run
are strictly sequential.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, Tuple, Union

from taskmaster_ai.config import TaskmasterConfig
from taskmaster_ai.cost.tracker import TelemetryEmitter, UsageRecord
from taskmaster_ai.exceptions import (
    AllRolesExhaustedError,
    ConfigurationError,
    OrchestrationCancelledError,
    ProviderError,
    RoleFailure,
    TransientNetworkError,
)
from taskmaster_ai.llm.models import (
    Attempt,
    AttemptOutcome,
    CanonicalResult,
    OrchestrationState,
    RunStateMachine,
    StreamResult,
)
from taskmaster_ai.observability import (
    bind_run_context,
    get_logger,
    increment_counter,
    record_histogram,
)
from taskmaster_ai.providers import (
    AdapterRegistry,
    CanonicalRequest,
    ProviderAdapter,
    ProviderResult,
    RoleBinding,
    extract_error_message,
    get_adapter_registry,
)
from taskmaster_ai.routing import (
    DEFAULT_ROLE_SEQUENCES,
    CredentialResolver,
    RetryPolicy,
    RoleConfigResolver,
)

Sleep = Callable[[float], Awaitable[Any]]


class CallMode(str, Enum):
    """Kind of provider call made by each attempt."""

    TEXT = "text"
    OBJECT = "object"
    STREAM = "stream"


class Orchestrator:
    """
    Resilient multi-provider dispatcher for one logical generation request.

    Collaborators are injectable so the state machine can be exercised
    without any real provider:

    - ``registry``: adapter per provider
    - ``credential_resolver`` / ``role_resolver``: per-role gating and bindings
    - ``telemetry``: usage record emission on success
    - ``retry_policy``: fixed policy (default: built per run from config)
    - ``sleep``: backoff sleep (default: ``asyncio.sleep``)
    - ``logger``: structlog logger bound per run

    Example:
        >>> orchestrator = Orchestrator()
        >>> result = await orchestrator.generate_text(
        ...     CanonicalRequest(user_prompt="Summarise the PRD")
        ... )
        >>> print(result.provider_id, result.text)
    """

    def __init__(
        self,
        *,
        registry: AdapterRegistry | None = None,
        credential_resolver: CredentialResolver | None = None,
        role_resolver: RoleConfigResolver | None = None,
        telemetry: TelemetryEmitter | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Sleep | None = None,
        logger: Any = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry or get_adapter_registry()
        self._credentials = credential_resolver or CredentialResolver()
        self._roles = role_resolver or RoleConfigResolver()
        self._telemetry = telemetry or TelemetryEmitter()
        self._retry_policy = retry_policy
        self._sleep = sleep or asyncio.sleep
        self._logger = logger or get_logger(__name__)
        self._clock = clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate_text(
        self,
        request: CanonicalRequest,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        run_timeout: Optional[float] = None,
    ) -> CanonicalResult:
        """
        Run a text request through the role sequence.

        Args:
            request: Canonical request
            cancel_event: Optional signal that aborts the run when set
            run_timeout: Overall run timeout in seconds (overrides config)

        Returns:
            CanonicalResult with ``text`` set

        Raises:
            AllRolesExhaustedError: Every role was skipped or exhausted
            OrchestrationCancelledError: Cancel signal or run timeout
        """
        return await self._execute(request, CallMode.TEXT, cancel_event, run_timeout)

    async def generate_object(
        self,
        request: CanonicalRequest,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        run_timeout: Optional[float] = None,
    ) -> CanonicalResult:
        """
        Run an object request; ``request.response_schema`` is required.

        Raises:
            ValueError: If the request has no response schema
            AllRolesExhaustedError: Every role was skipped or exhausted
            OrchestrationCancelledError: Cancel signal or run timeout
        """
        if request.response_schema is None:
            raise ValueError("generate_object requires a request with response_schema")
        return await self._execute(request, CallMode.OBJECT, cancel_event, run_timeout)

    async def stream_text(
        self,
        request: CanonicalRequest,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        run_timeout: Optional[float] = None,
    ) -> StreamResult:
        """
        Open a text stream; retries and escalation cover the opening only.

        Once the first chunk has arrived the stream belongs to the caller.
        A provider failure after that point is not retried or escalated: it
        is raised from the iteration as the adapter's classified
        ``ProviderError``, not as ``AllRolesExhaustedError``.

        Raises:
            AllRolesExhaustedError: No role could open the stream
            OrchestrationCancelledError: Cancel signal or run timeout
        """
        return await self._execute(request, CallMode.STREAM, cancel_event, run_timeout)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def _execute(
        self,
        request: CanonicalRequest,
        mode: CallMode,
        cancel_event: Optional[asyncio.Event],
        run_timeout: Optional[float],
    ) -> Union[CanonicalResult, StreamResult]:
        context = request.caller_context
        run_id = f"run-{uuid.uuid4().hex[:12]}"
        log = bind_run_context(
            self._logger,
            run_id=run_id,
            command_name=context.command_name,
            caller_id=context.caller_id,
        )
        start = self._clock()

        config, sequence = self._load_run_settings(request, log)
        policy = self._retry_policy or RetryPolicy.from_settings(config.orchestration)
        timeout = run_timeout if run_timeout is not None else config.orchestration.run_timeout
        deadline = start + timeout if timeout is not None else None

        machine = RunStateMachine(log, first_role=sequence[0] if sequence else None)
        attempts: List[Attempt] = []
        failures: List[RoleFailure] = []

        log.info(
            "orchestration_started",
            mode=mode.value,
            initial_role=request.role.value,
            role_sequence=sequence,
        )

        try:
            for index, role in enumerate(sequence):
                if index > 0:
                    machine.transition(OrchestrationState.PENDING, role=role)
                self._check_cancelled(cancel_event, deadline)

                try:
                    binding = self._roles.resolve(role, context.project_root)
                    adapter = self._registry.get(binding.provider_id)
                except (ConfigurationError, ImportError) as exc:
                    error = exc if isinstance(exc, ConfigurationError) else ConfigurationError(str(exc))
                    log.error("role_config_invalid", role=role, error=str(error))
                    increment_counter("role_skips_total", labels={"role": role, "reason": "configuration"})
                    failures.append(RoleFailure(role=role, provider_id=None, model_id=None, error=error))
                    machine.transition(OrchestrationState.ROLE_EXHAUSTED)
                    self._note_escalation(log, role, index, sequence)
                    continue

                credentials = self._credentials.resolve(
                    binding.provider_id, context.session_overrides, context.project_root
                )
                if not credentials.available:
                    reason = credentials.reason or f"No API key for provider {binding.provider_id.value}"
                    log.warning(
                        "role_skipped_missing_credentials",
                        role=role,
                        provider=binding.provider_id.value,
                        model=binding.model_id,
                        reason=reason,
                    )
                    increment_counter(
                        "role_skips_total", labels={"role": role, "reason": "missing_credentials"}
                    )
                    failures.append(
                        RoleFailure(
                            role=role,
                            provider_id=binding.provider_id.value,
                            model_id=binding.model_id,
                            skip_reason=reason,
                        )
                    )
                    continue

                outcome, role_error = await self._attempt_role(
                    adapter=adapter,
                    binding=binding,
                    request=request,
                    mode=mode,
                    api_key=credentials.api_key,
                    policy=policy,
                    attempt_timeout=config.orchestration.attempt_timeout,
                    deadline=deadline,
                    cancel_event=cancel_event,
                    machine=machine,
                    attempts=attempts,
                    log=log,
                )
                if outcome is not None:
                    return self._succeed(
                        outcome, binding, request, mode, config, attempts, machine, start, log
                    )

                failures.append(
                    RoleFailure(
                        role=role,
                        provider_id=binding.provider_id.value,
                        model_id=binding.model_id,
                        error=role_error,
                    )
                )
                machine.transition(OrchestrationState.ROLE_EXHAUSTED)
                self._note_escalation(log, role, index, sequence)

            machine.transition(OrchestrationState.ALL_ROLES_EXHAUSTED)
        except OrchestrationCancelledError as exc:
            self._record_cancelled(machine, start, log, exc.reason)
            raise
        except asyncio.CancelledError:
            self._record_cancelled(machine, start, log, "task_cancelled")
            raise

        error = AllRolesExhaustedError(failures, attempts)
        increment_counter("orchestration_runs_total", labels={"outcome": "all_roles_exhausted"})
        record_histogram(
            "orchestration_duration_seconds",
            self._clock() - start,
            labels={"outcome": "all_roles_exhausted"},
        )
        log.error(
            "all_roles_exhausted",
            roles=[f.role for f in failures],
            attempts=len(attempts),
            last_error=str(error.last_error) if error.last_error else None,
        )
        raise error

    async def _attempt_role(
        self,
        *,
        adapter: ProviderAdapter,
        binding: RoleBinding,
        request: CanonicalRequest,
        mode: CallMode,
        api_key: Optional[str],
        policy: RetryPolicy,
        attempt_timeout: Optional[float],
        deadline: Optional[float],
        cancel_event: Optional[asyncio.Event],
        machine: RunStateMachine,
        attempts: List[Attempt],
        log: Any,
    ) -> Tuple[Optional[Tuple[Any, Attempt]], Optional[BaseException]]:
        """Attempt loop for one role; returns ``((value, attempt), None)`` or ``(None, error)``."""
        role = binding.role.value
        provider = binding.provider_id.value
        attempt_number = 0

        while True:
            attempt_number += 1
            self._check_cancelled(cancel_event, deadline)
            machine.transition(OrchestrationState.ATTEMPTING, attempt_number=attempt_number)
            started_at = datetime.now(timezone.utc)
            call_start = self._clock()

            log.debug(
                "attempt_started",
                role=role,
                provider=provider,
                model=binding.model_id,
                attempt=attempt_number,
            )

            try:
                value = await self._guarded(
                    self._call_adapter(adapter, binding, request, mode, api_key),
                    attempt_timeout=attempt_timeout,
                    deadline=deadline,
                    cancel_event=cancel_event,
                    provider=provider,
                )
            except OrchestrationCancelledError:
                raise
            except ProviderError as exc:
                error: ProviderError = exc
            except Exception as exc:
                error = self._classify(adapter, exc, provider)
            else:
                attempt = self._record_attempt(
                    binding, attempt_number, started_at, call_start, AttemptOutcome.SUCCESS
                )
                attempts.append(attempt)
                log.info(
                    "attempt_succeeded",
                    role=role,
                    provider=provider,
                    model=binding.model_id,
                    attempt=attempt_number,
                    duration_ms=attempt.duration_ms,
                )
                return (value, attempt), None

            retryable = policy.is_retryable(error)
            attempts.append(
                self._record_attempt(
                    binding,
                    attempt_number,
                    started_at,
                    call_start,
                    AttemptOutcome.RETRYABLE_FAILURE if retryable else AttemptOutcome.FATAL_FAILURE,
                    error,
                )
            )

            if not policy.should_retry(error, attempt_number):
                log.warning(
                    "role_exhausted",
                    role=role,
                    provider=provider,
                    model=binding.model_id,
                    attempts=attempt_number,
                    error_type=type(error).__name__,
                    error=str(error),
                )
                return None, error

            delay = policy.backoff_duration(attempt_number)
            log.warning(
                "attempt_failed_retrying",
                role=role,
                provider=provider,
                model=binding.model_id,
                attempt=attempt_number,
                max_attempts=policy.max_attempts,
                error_type=type(error).__name__,
                error=str(error),
                retry_in_seconds=round(delay, 3),
            )
            await self._guarded(
                self._sleep(delay),
                attempt_timeout=None,
                deadline=deadline,
                cancel_event=cancel_event,
                provider=provider,
            )

    async def _call_adapter(
        self,
        adapter: ProviderAdapter,
        binding: RoleBinding,
        request: CanonicalRequest,
        mode: CallMode,
        api_key: Optional[str],
    ) -> Any:
        if mode is CallMode.TEXT:
            return await adapter.generate_text(binding, request, api_key=api_key)
        if mode is CallMode.OBJECT:
            return await adapter.generate_object(
                binding, request, request.response_schema, api_key=api_key
            )

        iterator = adapter.stream_text(binding, request, api_key=api_key).__aiter__()
        try:
            first_chunk = await iterator.__anext__()
        except StopAsyncIteration:
            return _chain("", None)
        except BaseException:
            # Failed or cancelled opening: release the provider connection
            await _aclose(iterator)
            raise
        return _chain(first_chunk, iterator)

    async def _guarded(
        self,
        awaitable: Awaitable[Any],
        *,
        attempt_timeout: Optional[float],
        deadline: Optional[float],
        cancel_event: Optional[asyncio.Event],
        provider: str,
    ) -> Any:
        """
        Await ``awaitable`` bounded by the attempt timeout, the run deadline
        and the cancel signal, whichever comes first.

        Raises:
            TransientNetworkError: The attempt timeout elapsed first
            OrchestrationCancelledError: Cancel signal or run deadline
        """
        timeout = attempt_timeout
        deadline_bound = False
        if deadline is not None:
            remaining = max(deadline - self._clock(), 0.0)
            if timeout is None or remaining <= timeout:
                timeout, deadline_bound = remaining, True

        call = asyncio.ensure_future(awaitable)
        waiters = {call}
        cancel_wait: Optional[asyncio.Future] = None
        if cancel_event is not None:
            cancel_wait = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_wait)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for waiter in waiters:
                if not waiter.done():
                    waiter.cancel()

        if call in done:
            return call.result()

        # Let the aborted call unwind before deciding what to report
        await asyncio.gather(call, return_exceptions=True)

        if cancel_wait is not None and cancel_wait in done:
            raise OrchestrationCancelledError(reason="cancelled")
        if deadline_bound:
            raise OrchestrationCancelledError(
                "Orchestration run timed out", reason="run_timeout"
            )
        raise TransientNetworkError(
            f"Provider call timed out after {timeout:.1f}s",
            provider_id=provider,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load_run_settings(
        self, request: CanonicalRequest, log: Any
    ) -> Tuple[TaskmasterConfig, List[str]]:
        project_root = request.caller_context.project_root
        try:
            config = self._roles.load_config(project_root)
            sequence = self._roles.role_sequence(request.role, project_root)
        except ConfigurationError as exc:
            # Bindings will fail per role; keep default retry/timeouts
            log.error("config_load_failed", project_root=project_root, error=str(exc))
            config = TaskmasterConfig()
            sequence = [r.value for r in DEFAULT_ROLE_SEQUENCES[request.role]]
        return config, sequence

    def _check_cancelled(
        self, cancel_event: Optional[asyncio.Event], deadline: Optional[float]
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise OrchestrationCancelledError(reason="cancelled")
        if deadline is not None and self._clock() >= deadline:
            raise OrchestrationCancelledError("Orchestration run timed out", reason="run_timeout")

    def _succeed(
        self,
        outcome: Tuple[Any, Attempt],
        binding: RoleBinding,
        request: CanonicalRequest,
        mode: CallMode,
        config: TaskmasterConfig,
        attempts: List[Attempt],
        machine: RunStateMachine,
        start: float,
        log: Any,
    ) -> Union[CanonicalResult, StreamResult]:
        value, attempt = outcome
        machine.transition(OrchestrationState.SUCCEEDED)
        elapsed = self._clock() - start
        increment_counter("orchestration_runs_total", labels={"outcome": "succeeded"})
        record_histogram("orchestration_duration_seconds", elapsed, labels={"outcome": "succeeded"})

        if mode is CallMode.STREAM:
            log.warning(
                "stream_usage_unavailable",
                provider=binding.provider_id.value,
                model=binding.model_id,
            )
            return StreamResult(
                stream=value,
                provider_id=binding.provider_id.value,
                model_id=binding.model_id,
                role=binding.role.value,
                attempts=list(attempts),
            )

        result: ProviderResult = value
        usage_record = self._emit_usage(
            request, attempt, result, config, int(elapsed * 1000), log
        )
        log.info(
            "orchestration_succeeded",
            role=binding.role.value,
            provider=binding.provider_id.value,
            model=binding.model_id,
            attempts=len(attempts),
            total_tokens=result.usage.total_tokens,
        )
        return CanonicalResult(
            text=result.text,
            object=result.object,
            usage=result.usage,
            provider_id=binding.provider_id.value,
            model_id=binding.model_id,
            role=binding.role.value,
            attempts=list(attempts),
            usage_record=usage_record,
        )

    def _emit_usage(
        self,
        request: CanonicalRequest,
        attempt: Attempt,
        result: ProviderResult,
        config: TaskmasterConfig,
        processing_time_ms: int,
        log: Any,
    ) -> Optional[UsageRecord]:
        try:
            return self._telemetry.emit(
                request.caller_context,
                attempt,
                result.usage,
                processing_time_ms,
                default_user_id=config.global_settings.user_id,
                pricing_lookup=config.pricing_for,
            )
        except Exception as exc:
            log.error("telemetry_emit_failed", error=str(exc), exc_info=True)
            return None

    def _record_attempt(
        self,
        binding: RoleBinding,
        attempt_number: int,
        started_at: datetime,
        call_start: float,
        outcome: AttemptOutcome,
        error: Optional[BaseException] = None,
    ) -> Attempt:
        duration = max(self._clock() - call_start, 0.0)
        increment_counter(
            "provider_attempts_total",
            labels={"provider": binding.provider_id.value, "outcome": outcome.value},
        )
        record_histogram(
            "attempt_duration_seconds", duration, labels={"provider": binding.provider_id.value}
        )
        return Attempt(
            role=binding.role.value,
            provider_id=binding.provider_id.value,
            model_id=binding.model_id,
            attempt_number=attempt_number,
            started_at=started_at,
            duration_ms=int(duration * 1000),
            outcome=outcome,
            error_type=type(error).__name__ if error is not None else None,
            error_message=str(error) if error is not None else None,
        )

    def _record_cancelled(
        self, machine: RunStateMachine, start: float, log: Any, reason: str
    ) -> None:
        if not machine.is_terminal:
            machine.transition(OrchestrationState.CANCELLED)
        increment_counter("orchestration_runs_total", labels={"outcome": "cancelled"})
        record_histogram(
            "orchestration_duration_seconds", self._clock() - start, labels={"outcome": "cancelled"}
        )
        log.warning("orchestration_cancelled", reason=reason, role=machine.role)

    @staticmethod
    def _note_escalation(log: Any, role: str, index: int, sequence: List[str]) -> None:
        if index + 1 < len(sequence):
            increment_counter("role_escalations_total", labels={"from_role": role})
            log.info("role_escalated", from_role=role, to_role=sequence[index + 1])

    @staticmethod
    def _classify(adapter: ProviderAdapter, exc: Exception, provider: str) -> ProviderError:
        classify = getattr(adapter, "classify_error", None)
        if callable(classify):
            return classify(exc)
        return ProviderError(extract_error_message(exc), provider_id=provider)


async def _aclose(iterator: Any) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is not None:
        await aclose()


async def _chain(first_chunk: str, rest: Optional[AsyncIterator[str]]) -> AsyncIterator[str]:
    try:
        if first_chunk:
            yield first_chunk
        if rest is not None:
            async for chunk in rest:
                yield chunk
    finally:
        if rest is not None:
            await _aclose(rest)


# Global orchestrator singleton
_global_orchestrator: Optional[Orchestrator] = None


def get_orchestrator() -> Orchestrator:
    """
    Get the global orchestrator.

    Returns:
        Global Orchestrator instance wired to the default registry,
        resolvers and telemetry sink
    """
    global _global_orchestrator
    if _global_orchestrator is None:
        _global_orchestrator = Orchestrator()
    return _global_orchestrator


__all__ = ["CallMode", "Orchestrator", "get_orchestrator"]

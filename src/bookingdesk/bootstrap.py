# src/bookingdesk/bootstrap.py
"""Service wiring from validated settings."""

from __future__ import annotations

from dataclasses import dataclass

import httpx
import structlog

from bookingdesk.contracts import ConfigurationError
from bookingdesk.core.clock import Clock, system_clock
from bookingdesk.core.config import BookingDeskSettings
from bookingdesk.core.rate_limit.limiter import FixedWindowRateLimiter
from bookingdesk.core.retry import RetryConfig, RetryManager
from bookingdesk.core.state.sql_store import SQLStateStore
from bookingdesk.core.state.store import InMemoryStateStore, StateStore
from bookingdesk.core.state.submissions import SubmissionGuard
from bookingdesk.engine.decisions import DecisionTokenManager
from bookingdesk.engine.intake import BookingIntake, IntakeHeaders, RateLimitPolicy
from bookingdesk.engine.messages import MessageComposer
from bookingdesk.engine.notifications import DryRunNotifier, Notifier, ResendNotifier
from bookingdesk.engine.state_machine import BookingStateMachine
from bookingdesk.ledger.auth import ServiceAccountCredentials, ServiceAccountTokenProvider, TokenProvider
from bookingdesk.ledger.bookings import BookingLedger
from bookingdesk.ledger.client import LedgerClient
from bookingdesk.ledger.layout import DriverContact
from bookingdesk.web.pages import PageRenderer

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Services:
    """Everything the web layer needs, built once per process."""

    intake: BookingIntake
    decisions: DecisionTokenManager
    composer: MessageComposer
    notifier: Notifier
    pages: PageRenderer
    ledger: BookingLedger
    store: StateStore


def build_store(settings: BookingDeskSettings, *, clock: Clock = system_clock) -> StateStore:
    if settings.state.backend == "sql":
        try:
            return SQLStateStore.from_url(settings.state.url, clock=clock)
        except ValueError as e:
            raise ConfigurationError(f"state.url: {e}") from None
    return InMemoryStateStore(clock=clock)


def _token_provider(settings: BookingDeskSettings, http_client: httpx.Client, clock: Clock) -> TokenProvider:
    if not settings.ledger.service_account_json:
        raise ConfigurationError("ledger.service_account_json is required")
    credentials = ServiceAccountCredentials.from_json(settings.ledger.service_account_json)
    return ServiceAccountTokenProvider(credentials, http_client, clock=clock)


def build_services(
    settings: BookingDeskSettings,
    *,
    http_client: httpx.Client | None = None,
    store: StateStore | None = None,
    token_provider: TokenProvider | None = None,
    notifier: Notifier | None = None,
    retry: RetryManager | None = None,
    clock: Clock = system_clock,
) -> Services:
    """Wire the service graph.

    Collaborators can be injected (tests); anything not injected is
    built from settings.

    Raises:
        ConfigurationError: A required secret or sheet id is missing
    """
    if not settings.security.webhook_secret:
        raise ConfigurationError("security.webhook_secret is required")
    if not settings.ledger.primary_sheet_id:
        raise ConfigurationError("ledger.primary_sheet_id is required")

    http = http_client or httpx.Client(timeout=settings.ledger.timeout_seconds)
    state = store if store is not None else build_store(settings, clock=clock)
    tokens = token_provider or _token_provider(settings, http, clock)

    ledger_client = LedgerClient(
        http,
        tokens,
        retry or RetryManager(RetryConfig.from_settings(settings.retry)),
        base_url=settings.ledger.api_base_url,
    )
    ledger = BookingLedger(
        ledger_client,
        primary_sheet_id=settings.ledger.primary_sheet_id,
        primary_range=settings.ledger.primary_range,
        backup_sheet_id=settings.ledger.backup_sheet_id,
        backup_range=settings.ledger.backup_range,
        audit_sheet_id=settings.ledger.effective_audit_sheet_id,
        audit_range=settings.ledger.audit_range,
        verify_writes=settings.ledger.verify_writes,
        clock=clock,
    )

    notify = settings.notifications
    if notifier is None:
        if notify.dry_run:
            notifier = DryRunNotifier()
        else:
            notifier = ResendNotifier(
                httpx.Client(timeout=notify.timeout_seconds),
                api_key=notify.api_key,
                from_email=notify.from_email,
                api_url=notify.api_url,
            )

    driver = DriverContact(name=notify.driver.name, email=notify.driver.email, phone=notify.driver.phone)
    composer = MessageComposer(
        business_name=notify.business_name,
        public_base_url=settings.decisions.public_base_url,
        owner_email=notify.owner_email,
        business_phone=notify.business_phone,
        driver=driver,
    )

    decisions = DecisionTokenManager(
        state,
        BookingStateMachine(ledger),
        minimum_age_ms=settings.decisions.minimum_age_ms,
        used_token_retention_seconds=settings.decisions.used_token_retention_seconds,
        clock=clock,
    )
    guard = SubmissionGuard(
        state,
        retention_seconds=settings.submissions.retention_seconds,
        in_flight_lease_seconds=settings.submissions.in_flight_lease_seconds,
        reject_in_flight=settings.submissions.reject_in_flight,
        clock=clock,
    )
    intake = BookingIntake(
        webhook_secret=settings.security.webhook_secret,
        limiter=FixedWindowRateLimiter(state, clock=clock),
        guard=guard,
        ledger=ledger,
        decisions=decisions,
        notifier=notifier,
        composer=composer,
        driver=driver,
        headers=IntakeHeaders(
            signature=settings.security.signature_header,
            submission_id=settings.security.submission_id_header,
            attempt=settings.security.attempt_header,
        ),
        rate_limit=RateLimitPolicy(
            enabled=settings.rate_limit.enabled,
            max_requests=settings.rate_limit.max_requests,
            window_seconds=settings.rate_limit.window_seconds,
        ),
        clock=clock,
    )
    logger.debug(
        "services.built",
        state_backend=settings.state.backend,
        dry_run=notifier.dry_run,
        backup=bool(settings.ledger.backup_sheet_id),
    )
    return Services(
        intake=intake,
        decisions=decisions,
        composer=composer,
        notifier=notifier,
        pages=PageRenderer(business_name=notify.business_name, owner_email=notify.owner_email),
        ledger=ledger,
        store=state,
    )

# src/bookingdesk/web/server.py
"""Starlette ASGI application for bookingdesk.

Routes:
    POST /webhook, POST /     signed booking deliveries (JSON responses)
    GET  /accept/{token}      owner accepts a booking (HTML)
    GET  /deny/{token}        owner denies a booking (HTML)
    GET  /health              liveness

Intake and redemption are synchronous (blocking httpx and SQL calls)
and run in Starlette's threadpool. The customer decision email is
attached to the response as a BackgroundTask, so it runs after the
owner sees the result page and its failure cannot change that page.

Usage:
    from bookingdesk.bootstrap import build_services
    from bookingdesk.web.server import create_app

    app = create_app(build_services(settings))
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

import structlog
from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, Response
from starlette.routing import Route

from bookingdesk import __version__
from bookingdesk.contracts import (
    BookingDeskError,
    BookingNotFound,
    Decision,
    DuplicateSubmission,
    InvalidToken,
    LedgerError,
    NotificationError,
    RateLimited,
    RedemptionResult,
    TokenAlreadyUsed,
    TokenTooYoung,
    TransitionOutcome,
)
from bookingdesk.core.clock import iso_timestamp, system_clock
from bookingdesk.engine.notifications import send_best_effort
from bookingdesk.web.pages import Page

if TYPE_CHECKING:
    from bookingdesk.bootstrap import Services

logger = structlog.get_logger(__name__)


def _page_response(page: Page, *, background: BackgroundTask | None = None) -> HTMLResponse:
    headers = {"Cache-Control": "no-store"}
    if page.retry_after_seconds is not None:
        headers["Retry-After"] = str(page.retry_after_seconds)
    return HTMLResponse(page.html, status_code=page.status_code, headers=headers, background=background)


class BookingDeskServer:
    """Main server class.

    Holds the wired services and exposes the Starlette app.
    """

    def __init__(self, services: Services) -> None:
        self._services = services
        self._app = self._create_app()

    def _create_app(self) -> Starlette:
        routes = [
            Route("/health", self._health_endpoint, methods=["GET"]),
            Route("/webhook", self._webhook_endpoint, methods=["POST"]),
            Route("/", self._webhook_endpoint, methods=["POST"]),
            Route("/accept/{token}", self._accept_endpoint, methods=["GET"]),
            Route("/deny/{token}", self._deny_endpoint, methods=["GET"]),
        ]
        return Starlette(debug=False, routes=routes)

    @property
    def app(self) -> Starlette:
        """Get the Starlette ASGI application."""
        return self._app

    @staticmethod
    def _bind_request(request: Request, route: str) -> None:
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=uuid.uuid4().hex[:12],
            route=route,
            client_ip=request.client.host if request.client else None,
        )

    async def _health_endpoint(self, request: Request) -> JSONResponse:
        return JSONResponse({"status": "healthy", "version": __version__})

    async def _webhook_endpoint(self, request: Request) -> JSONResponse:
        """Handle a signed booking delivery."""
        self._bind_request(request, "webhook")
        intake = self._services.intake
        body = await request.body()
        logger.info("webhook.received", size=len(body))

        try:
            result = await run_in_threadpool(intake.handle, body, request.headers)
        except RateLimited as e:
            logger.info("webhook.rejected", reason="rate_limited", retry_after=e.retry_after_seconds)
            return JSONResponse(
                {"ok": False, "message": e.message, "retryAfter": e.retry_after_seconds},
                status_code=e.http_status,
                headers={"Retry-After": str(e.retry_after_seconds)},
            )
        except DuplicateSubmission as e:
            logger.info("webhook.rejected", reason="duplicate", in_flight=e.in_flight)
            return JSONResponse({"ok": False, "error": e.message}, status_code=e.http_status)
        except NotificationError:
            return JSONResponse(
                {
                    "ok": False,
                    "dryRun": intake.dry_run,
                    "receivedAt": iso_timestamp(system_clock()),
                    "error": "Failed to send notification",
                },
                status_code=502,
            )
        except LedgerError as e:
            logger.error(
                "webhook.rejected",
                reason="ledger",
                operation=e.operation,
                status_code=e.status_code,
                error=e.message,
            )
            return JSONResponse({"ok": False, "error": "Failed to record booking"}, status_code=e.http_status)
        except BookingDeskError as e:
            logger.info("webhook.rejected", reason=type(e).__name__, error=e.message)
            return JSONResponse({"ok": False, "error": e.message}, status_code=e.http_status)

        body_out: dict[str, Any] = {
            "ok": True,
            "dryRun": intake.dry_run,
            "receivedAt": result.received_at,
            "transactionId": result.transaction_id,
            "notificationId": result.notification.id if result.notification else None,
        }
        return JSONResponse(body_out)

    async def _accept_endpoint(self, request: Request) -> Response:
        return await self._decision_endpoint(request, Decision.ACCEPT)

    async def _deny_endpoint(self, request: Request) -> Response:
        return await self._decision_endpoint(request, Decision.DENY)

    async def _decision_endpoint(self, request: Request, decision: Decision) -> Response:
        """Redeem a decision link and render the outcome."""
        self._bind_request(request, decision.value)
        pages = self._services.pages

        # Link previews and scanners issue HEAD; never redeem on them
        if request.method == "HEAD":
            return Response(status_code=200, headers={"Cache-Control": "no-store"})

        token = request.path_params["token"]
        try:
            result = await run_in_threadpool(self._services.decisions.redeem, token, decision)
        except TokenTooYoung as e:
            logger.info("decision.rejected", reason="too_young", retry_after_ms=e.retry_after_ms)
            return _page_response(pages.too_soon(e.retry_after_seconds))
        except TokenAlreadyUsed:
            logger.info("decision.rejected", reason="used")
            return _page_response(pages.link_used())
        except InvalidToken as e:
            logger.info("decision.rejected", reason="invalid", error=e.message)
            return _page_response(pages.invalid_link())
        except BookingNotFound as e:
            logger.warning("decision.rejected", reason="not_found", transaction_id=e.transaction_id)
            return _page_response(pages.booking_not_found())
        except LedgerError as e:
            logger.error(
                "decision.rejected",
                reason="ledger",
                operation=e.operation,
                status_code=e.status_code,
                error=e.message,
            )
            return _page_response(pages.ledger_unavailable())

        return self._render_redemption(result)

    def _render_redemption(self, result: RedemptionResult) -> Response:
        pages = self._services.pages
        transition = result.transition

        if transition.outcome is TransitionOutcome.APPLIED:
            message = self._services.composer.customer_decision(
                accepted=result.decision is Decision.ACCEPT,
                customer_name=result.customer_name,
                customer_email=result.customer_email,
                transaction_id=transition.transaction_id,
            )
            task = BackgroundTask(
                send_best_effort,
                self._services.notifier,
                message,
                transaction_id=transition.transaction_id,
            )
            return _page_response(pages.decision_applied(result.decision, result.customer_name), background=task)

        if transition.outcome is TransitionOutcome.ALREADY_IN_TARGET_STATE:
            return _page_response(pages.already_in_target(transition.current_status, result.customer_name))

        return _page_response(
            pages.already_decided(transition.current_status, result.customer_name, transition.transaction_id)
        )


def create_app(services: Services) -> Starlette:
    """Create the Starlette application for the given services."""
    return BookingDeskServer(services).app

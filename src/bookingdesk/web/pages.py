# src/bookingdesk/web/pages.py
"""HTML pages shown when the owner follows a decision link."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote

import jinja2
import jinja2.sandbox

from bookingdesk.contracts import BookingStatus, Decision

_TEMPLATES = {
    "layout": """\
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  {% if refresh_seconds %}<meta http-equiv="refresh" content="{{ refresh_seconds }}">{% endif %}
  <title>{{ title }} - {{ business_name }}</title>
</head>
<body>
  <main>
    <h1>{{ title }}</h1>
    {% for paragraph in paragraphs %}<p>{{ paragraph }}</p>
    {% endfor %}
    {% if mailto %}<p><a href="{{ mailto }}">Email {{ owner_email }} to request a change</a></p>{% endif %}
  </main>
</body>
</html>
""",
}


@dataclass(frozen=True)
class Page:
    status_code: int
    html: str
    retry_after_seconds: int | None = None


class PageRenderer:
    """Renders the decision-link result pages."""

    def __init__(self, *, business_name: str, owner_email: str = "") -> None:
        self._business_name = business_name
        self._owner_email = owner_email
        self._env = jinja2.sandbox.SandboxedEnvironment(
            loader=jinja2.DictLoader(_TEMPLATES),
            autoescape=True,
            undefined=jinja2.StrictUndefined,
        )

    def _page(
        self,
        status_code: int,
        title: str,
        *paragraphs: str,
        mailto: str = "",
        refresh_seconds: int | None = None,
    ) -> Page:
        html = self._env.get_template("layout").render(
            title=title,
            paragraphs=paragraphs,
            business_name=self._business_name,
            owner_email=self._owner_email,
            mailto=mailto,
            refresh_seconds=refresh_seconds,
        )
        return Page(status_code=status_code, html=html, retry_after_seconds=refresh_seconds)

    def decision_applied(self, decision: Decision, customer_name: str) -> Page:
        if decision is Decision.ACCEPT:
            return self._page(200, "Booking Accepted", f"The booking for {customer_name} is accepted.", "The customer will be notified by email.")
        return self._page(200, "Booking Denied", f"The booking for {customer_name} is denied.", "The customer will be notified by email.")

    def already_in_target(self, status: BookingStatus, customer_name: str) -> Page:
        return self._page(200, f"Already {status.value}", f"The booking for {customer_name} was already {status.value.lower()}.", f"Current status: {status.value}")

    def already_decided(self, status: BookingStatus, customer_name: str, transaction_id: str) -> Page:
        mailto = ""
        if self._owner_email:
            subject = quote(f"Change decision for booking {transaction_id}")
            mailto = f"mailto:{self._owner_email}?subject={subject}"
        return self._page(
            200,
            "Decision Already Made",
            f"The booking for {customer_name} has already been decided.",
            f"Current status: {status.value}",
            mailto=mailto,
        )

    def booking_not_found(self) -> Page:
        return self._page(
            200,
            "Booking Not Found Yet",
            "We could not find this booking in the ledger right now.",
            "The link is still valid. Please try again in a minute.",
        )

    def too_soon(self, retry_after_seconds: int) -> Page:
        return self._page(
            425,
            "One Moment",
            "This link was opened a moment after it was sent.",
            "The page will retry automatically.",
            refresh_seconds=retry_after_seconds,
        )

    def link_used(self) -> Page:
        return self._page(410, "Link Already Used", "This decision link has already been used.")

    def invalid_link(self) -> Page:
        return self._page(400, "Invalid Link", "This decision link is not valid.")

    def ledger_unavailable(self) -> Page:
        return self._page(
            502,
            "Temporarily Unavailable",
            "The booking ledger could not be reached.",
            "Your link has not been used. Please try again shortly.",
        )

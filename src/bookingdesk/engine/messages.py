# src/bookingdesk/engine/messages.py
"""Email bodies for owner alerts and customer decision notices.

Templates are rendered with a sandboxed, autoescaping Jinja2
environment: every field comes from an unauthenticated web form.
Plain-text bodies use a second, non-escaping environment.
"""

from __future__ import annotations

import jinja2
import jinja2.sandbox

from bookingdesk.contracts import BookingSummary, IssuedTokens
from bookingdesk.engine.notifications import EmailMessage
from bookingdesk.ledger.layout import DriverContact

_HTML_TEMPLATES = {
    "owner_alert": """\
<h2>New booking request</h2>
<table>
  <tr><td>Customer</td><td>{{ b.customer_name }}</td></tr>
  <tr><td>Email</td><td>{{ b.customer_email }}</td></tr>
  {% if b.customer_phone %}<tr><td>Phone</td><td>{{ b.customer_phone }}</td></tr>{% endif %}
  <tr><td>From</td><td>{{ b.start_location }}</td></tr>
  <tr><td>To</td><td>{{ b.end_location }}</td></tr>
  <tr><td>Pickup</td><td>{{ b.pickup_time }}</td></tr>
  <tr><td>Distance</td><td>{{ b.estimated_distance }}</td></tr>
  <tr><td>Duration</td><td>{{ b.estimated_duration }}</td></tr>
  <tr><td>Passengers</td><td>{{ b.passengers }}</td></tr>
  {% if b.vehicle_type %}<tr><td>Vehicle</td><td>{{ b.vehicle_type }}</td></tr>{% endif %}
  <tr><td>Price</td><td>{{ b.price }}</td></tr>
  {% if b.notes %}<tr><td>Notes</td><td>{{ b.notes }}</td></tr>{% endif %}
</table>
{% if map_url %}<p><a href="{{ map_url }}">View route</a></p>{% endif %}
<p>
  <a href="{{ accept_url }}">Accept booking</a> &middot;
  <a href="{{ deny_url }}">Deny booking</a>
</p>
<p><small>Reference {{ transaction_id }}</small></p>
""",
    "customer_accepted": """\
<p>Hi {{ customer_name }},</p>
<p>Your booking with {{ business_name }} is confirmed.</p>
{% if driver.name %}<p>Your driver is {{ driver.name }}{% if driver.phone %}, reachable at {{ driver.phone }}{% endif %}{% if driver.email %} or {{ driver.email }}{% endif %}.</p>{% endif %}
<p><small>Reference {{ transaction_id }}</small></p>
""",
    "customer_denied": """\
<p>Hi {{ customer_name }},</p>
<p>Unfortunately {{ business_name }} cannot take your booking this time.</p>
{% if business_phone %}<p>Call us on {{ business_phone }} to find another time.</p>{% endif %}
<p><small>Reference {{ transaction_id }}</small></p>
""",
}

_TEXT_TEMPLATES = {
    "owner_alert": """\
New booking request

Customer: {{ b.customer_name }} <{{ b.customer_email }}>
From: {{ b.start_location }}
To: {{ b.end_location }}
Pickup: {{ b.pickup_time }}
Passengers: {{ b.passengers }}
Price: {{ b.price }}

Accept: {{ accept_url }}
Deny: {{ deny_url }}
""",
    "customer_accepted": """\
Hi {{ customer_name }},

Your booking with {{ business_name }} is confirmed.
{% if driver.name %}Driver: {{ driver.name }} {{ driver.phone }} {{ driver.email }}{% endif %}
""",
    "customer_denied": """\
Hi {{ customer_name }},

Unfortunately {{ business_name }} cannot take your booking this time.
{% if business_phone %}Call us on {{ business_phone }}.{% endif %}
""",
}


def _http_url(value: str) -> str:
    """Return value if it is an http(s) URL, else an empty string."""
    return value if value.lower().startswith(("http://", "https://")) else ""


class MessageComposer:
    """Builds EmailMessage objects from booking data."""

    def __init__(
        self,
        *,
        business_name: str,
        public_base_url: str,
        owner_email: str,
        business_phone: str = "",
        driver: DriverContact | None = None,
    ) -> None:
        self._business_name = business_name
        self._base_url = public_base_url.rstrip("/")
        self._owner_email = owner_email
        self._business_phone = business_phone
        self._driver = driver or DriverContact()
        self._html = jinja2.sandbox.SandboxedEnvironment(
            loader=jinja2.DictLoader(_HTML_TEMPLATES),
            autoescape=True,
            undefined=jinja2.StrictUndefined,
        )
        self._text = jinja2.sandbox.SandboxedEnvironment(
            loader=jinja2.DictLoader(_TEXT_TEMPLATES),
            autoescape=False,
            undefined=jinja2.StrictUndefined,
        )

    def decision_url(self, decision: str, token: str) -> str:
        return f"{self._base_url}/{decision}/{token}"

    def _render(self, name: str, **context: object) -> tuple[str, str]:
        return (
            self._html.get_template(name).render(**context),
            self._text.get_template(name).render(**context),
        )

    def owner_alert(self, booking: BookingSummary, transaction_id: str, tokens: IssuedTokens) -> EmailMessage:
        html, text = self._render(
            "owner_alert",
            b=booking,
            map_url=_http_url(booking.map_url),
            transaction_id=transaction_id,
            accept_url=self.decision_url("accept", tokens.accept),
            deny_url=self.decision_url("deny", tokens.deny),
        )
        return EmailMessage(
            to=self._owner_email,
            subject=f"New booking: {booking.customer_name} - {booking.pickup_time}",
            html=html,
            text=text,
            reply_to=booking.customer_email,
        )

    def customer_decision(
        self,
        *,
        accepted: bool,
        customer_name: str,
        customer_email: str,
        transaction_id: str,
    ) -> EmailMessage:
        name = "customer_accepted" if accepted else "customer_denied"
        html, text = self._render(
            name,
            customer_name=customer_name,
            business_name=self._business_name,
            business_phone=self._business_phone,
            driver=self._driver,
            transaction_id=transaction_id,
        )
        verdict = "confirmed" if accepted else "update"
        return EmailMessage(
            to=customer_email,
            subject=f"{self._business_name}: booking {verdict}",
            html=html,
            text=text,
            reply_to=self._owner_email or None,
        )

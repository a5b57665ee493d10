"""HTTP surface: webhook endpoint, decision links, result pages."""

from bookingdesk.web.pages import Page, PageRenderer
from bookingdesk.web.server import BookingDeskServer, create_app

__all__ = ["BookingDeskServer", "Page", "PageRenderer", "create_app"]

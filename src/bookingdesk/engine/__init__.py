"""Booking workflow: intake pipeline, decision tokens, state machine, notifications."""

from bookingdesk.engine.decisions import DecisionTokenManager
from bookingdesk.engine.intake import BookingIntake, IntakeHeaders, RateLimitPolicy
from bookingdesk.engine.messages import MessageComposer
from bookingdesk.engine.notifications import DryRunNotifier, EmailMessage, Notifier, ResendNotifier
from bookingdesk.engine.state_machine import BookingStateMachine

__all__ = [
    "BookingIntake",
    "BookingStateMachine",
    "DecisionTokenManager",
    "DryRunNotifier",
    "EmailMessage",
    "IntakeHeaders",
    "MessageComposer",
    "Notifier",
    "RateLimitPolicy",
    "ResendNotifier",
]

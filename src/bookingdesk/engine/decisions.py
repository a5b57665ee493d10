# src/bookingdesk/engine/decisions.py
"""Decision token issuance and redemption.

Each booking gets two independent tokens, one per decision, stored
without expiry under token:accept:<token> and token:deny:<token>.
Redemption order matters:

1. unknown or malformed token  -> InvalidToken (400)
2. already redeemed            -> TokenAlreadyUsed (410)
3. younger than minimum age    -> TokenTooYoung (425)
4. state machine transition    (ledger access starts here)
5. mark used, keep for the used-token retention window

Steps 1-3 never touch the ledger. Mail scanners that prefetch links
right after delivery hit step 3 and leave the token intact.

Redeeming one token does not touch its sibling. Once the booking is
decided the sibling can only produce ALREADY_DECIDED_OTHERWISE, which
consumes it.
"""

from __future__ import annotations

import json
import re

import structlog

from bookingdesk.contracts import (
    Decision,
    DecisionToken,
    InvalidToken,
    IssuedTokens,
    RedemptionResult,
    TokenAlreadyUsed,
    TokenTooYoung,
)
from bookingdesk.core.clock import Clock, system_clock, to_datetime, to_epoch_ms
from bookingdesk.core.identifiers import new_decision_token
from bookingdesk.core.state.store import StateStore
from bookingdesk.engine.state_machine import BookingStateMachine

logger = structlog.get_logger(__name__)

MIN_TOKEN_LENGTH = 16
_TOKEN_PATTERN = re.compile(r"[0-9a-fA-F]+")


def token_key(decision: Decision, token: str) -> str:
    return f"token:{decision.value}:{token}"


class DecisionTokenManager:
    """Issues accept/deny token pairs and redeems them against the state machine."""

    def __init__(
        self,
        store: StateStore,
        state_machine: BookingStateMachine,
        *,
        minimum_age_ms: int = 2000,
        used_token_retention_seconds: int = 300,
        clock: Clock = system_clock,
    ) -> None:
        self._store = store
        self._state_machine = state_machine
        self._minimum_age_ms = minimum_age_ms
        self._used_retention_seconds = used_token_retention_seconds
        self._clock = clock

    def issue(self, transaction_id: str, customer_name: str, customer_email: str) -> IssuedTokens:
        """Create and persist the token pair for a booking."""
        created_at = to_datetime(self._clock())
        record = DecisionToken(
            transaction_id=transaction_id,
            customer_name=customer_name,
            customer_email=customer_email,
            created_at=created_at,
        )
        tokens = IssuedTokens(accept=new_decision_token(), deny=new_decision_token())
        payload = record.to_json()
        for decision in Decision:
            self._store.put(token_key(decision, tokens.for_decision(decision)), payload)
        return tokens

    def _load(self, token: str, decision: Decision) -> DecisionToken:
        if len(token) < MIN_TOKEN_LENGTH or not _TOKEN_PATTERN.fullmatch(token):
            raise InvalidToken("Malformed decision token")
        raw = self._store.get(token_key(decision, token))
        if raw is None:
            raise InvalidToken("Unknown decision token")
        try:
            return DecisionToken.from_json(raw)
        except (ValueError, json.JSONDecodeError) as e:
            logger.warning("decision.token_unreadable", decision=decision.value, error=str(e))
            raise InvalidToken("Unreadable decision token") from None

    def redeem(self, token: str, decision: Decision) -> RedemptionResult:
        """Redeem a decision link.

        Returns:
            RedemptionResult whose transition carries the tagged outcome

        Raises:
            InvalidToken: Malformed, unknown, or unreadable token
            TokenAlreadyUsed: Token was redeemed before
            TokenTooYoung: Token is younger than the minimum age
            BookingNotFound: Ledger has no row for the token's booking (token kept)
            LedgerError: Ledger access failed after retries (token kept)
        """
        record = self._load(token, decision)
        if record.is_used:
            raise TokenAlreadyUsed("Decision link already used")

        now = self._clock()
        age_ms = now - to_epoch_ms(record.created_at)
        if age_ms < self._minimum_age_ms:
            raise TokenTooYoung(self._minimum_age_ms - age_ms)

        transition = self._state_machine.transition(record.transaction_id, decision.target_status)

        used = record.mark_used(to_datetime(self._clock()))
        self._store.put(token_key(decision, token), used.to_json(), ttl_seconds=self._used_retention_seconds)
        logger.info(
            "decision.redeemed",
            transaction_id=record.transaction_id,
            decision=decision.value,
            outcome=transition.outcome.value,
        )
        return RedemptionResult(
            decision=decision,
            transition=transition,
            customer_name=record.customer_name,
            customer_email=record.customer_email,
        )

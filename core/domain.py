"""
Domain Layer Base Classes.

Pricing, booking windows, status transitions and form checks are written
against these bases. None of them touch the record store or local storage,
so the same rules back the HTTP endpoints and the state managers.

Example Usage:
    class BookingWindowPolicy(PolicyEngine):
        def evaluate(self, context: dict) -> PolicyDecision:
            if context["appointment_date"] < context["today"]:
                return PolicyDecision(PolicyResult.DENIED, "Appointments cannot be booked in the past")
            ...
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


class PolicyResult(Enum):
    APPROVED = "approved"
    DENIED = "denied"


@dataclass
class PolicyDecision:
    """
    Outcome of a rule check.

    Attributes:
        result: approved or denied
        reason: Message shown to the user when the request is denied
        metadata: Values the rule computed on the way (e.g. days_ahead)
    """
    result: PolicyResult
    reason: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_approved(self) -> bool:
        return self.result == PolicyResult.APPROVED

    @property
    def is_denied(self) -> bool:
        return self.result == PolicyResult.DENIED


class PolicyEngine(ABC):
    """A rule evaluated against a plain dict of facts."""

    @abstractmethod
    def evaluate(self, context: Dict[str, Any]) -> PolicyDecision:
        pass


class DomainService(ABC):
    """
    Computes a domain value (order totals, a validated booking) from its
    inputs. Collaborators are passed in; results are dataclasses.
    """

    @abstractmethod
    def execute(self, *args, **kwargs) -> Any:
        pass


@dataclass
class ValidationError:
    """One rejected form field; message is user-facing."""
    field: str
    message: str
    code: str = "invalid"


class Validator(ABC):
    """Checks submitted form data, returning every problem found."""

    @abstractmethod
    def validate(self, data: Dict[str, Any]) -> List[ValidationError]:
        pass

    def is_valid(self, data: Dict[str, Any]) -> bool:
        return not self.validate(data)


# =============================================================================
# MONEY AND DATES
# =============================================================================

CENTS = Decimal("0.01")


def round_money(amount: Decimal) -> Decimal:
    """Round a monetary amount half-up to cents."""
    return Decimal(amount).quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_date(date_string: str) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC, bad input gives None."""
    if not date_string:
        return None
    try:
        parsed = datetime.fromisoformat(date_string.replace("Z", "+00:00"))
    except (ValueError, TypeError, AttributeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed

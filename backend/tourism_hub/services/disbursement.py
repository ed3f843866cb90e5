"""Disbursement ledger for grant applications.

``amount_approved``, ``initial_disbursement_amount`` and
``final_disbursement_amount`` are each written exactly once, by the
transition that owns them.  The ORM validator on
:class:`~tourism_hub.models.db.grant_application.GrantApplication`
rejects any assignment not made through :meth:`DisbursementLedger.record`.
"""

import logging
from decimal import Decimal, InvalidOperation

from tourism_hub.errors import LedgerViolation, ValidationFailure
from tourism_hub.models.db.grant_application import GrantApplication

logger = logging.getLogger(__name__)

# transition name -> ledger column it owns
LEDGER_TRANSITIONS: dict[str, str] = {
    "make_conditional_offer": "amount_approved",
    "approve_early_report": "initial_disbursement_amount",
    "complete": "final_disbursement_amount",
}


def to_amount(value, action: str) -> Decimal:
    """Parse a non-negative money amount with two decimal places."""
    try:
        amount = Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationFailure(f"Invalid amount: {value!r}", action=action) from exc
    if not amount.is_finite() or amount < 0:
        raise ValidationFailure("Amount must be zero or positive", action=action)
    return amount


class DisbursementLedger:
    """Writes ledger amounts on behalf of a named transition."""

    @staticmethod
    def record(application: GrantApplication, transition: str, amount) -> Decimal:
        field_name = LEDGER_TRANSITIONS.get(transition)
        if field_name is None:
            raise LedgerViolation(
                f"Transition '{transition}' does not own a ledger field",
                action=transition,
            )
        value = to_amount(amount, transition)
        application._ledger_authorized = field_name
        try:
            setattr(application, field_name, value)
        finally:
            application._ledger_authorized = None
        logger.info(
            "Ledger: %s=%s recorded on %s by %s",
            field_name,
            value,
            application.id,
            transition,
        )
        return value

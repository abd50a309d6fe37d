"""
Caller identity and capabilities.

Authentication happens upstream; the gateway forwards an already verified
identity in the X-User-Id / X-User-Role headers and the engine trusts it.
"""

from dataclasses import dataclass
from enum import Enum


class CallerRole(str, Enum):
    CUSTOMER = "customer"
    SELLER = "seller"
    ADMIN = "admin"
    SYSTEM = "system"  # background processes (split rollback, reconciliation)


class Capability(str, Enum):
    CUSTOMER_CANCEL = "customer_cancel"
    FULFILLMENT_TRANSITION = "fulfillment_transition"
    ADMIN_OVERRIDE = "admin_override"
    PAYMENT_RECORD = "payment_record"


CAPABILITIES: dict[CallerRole, frozenset[Capability]] = {
    CallerRole.CUSTOMER: frozenset({Capability.CUSTOMER_CANCEL}),
    CallerRole.SELLER: frozenset(
        {
            Capability.CUSTOMER_CANCEL,
            Capability.FULFILLMENT_TRANSITION,
            Capability.ADMIN_OVERRIDE,
            Capability.PAYMENT_RECORD,
        }
    ),
    CallerRole.ADMIN: frozenset(Capability),
    CallerRole.SYSTEM: frozenset(Capability),
}


@dataclass(frozen=True)
class Caller:
    user_id: str
    role: CallerRole

    def can(self, capability: Capability) -> bool:
        return capability in CAPABILITIES.get(self.role, frozenset())


SYSTEM_CALLER = Caller(user_id="order-engine", role=CallerRole.SYSTEM)

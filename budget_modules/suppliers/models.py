"""
Supplier registry domain models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from uuid import UUID


class PaymentMethod(str, Enum):
    """How a supplier is paid."""

    TRANSFER = "transferencia"
    TB30 = "tb30"
    TB60 = "tb60"
    CARD = "tarjeta"
    CASH = "efectivo"


class CertificateStatus(str, Enum):
    """Combined state of a supplier's two certificates."""

    VALID = "valid"
    EXPIRING = "expiring"
    EXPIRED = "expired"


@dataclass(frozen=True)
class Certificate:
    """A compliance certificate.  Only the upload flag and expiry are tracked."""

    uploaded: bool = False
    expiry_date: date | None = None


@dataclass(frozen=True)
class Supplier:
    """A vendor that purchase orders and invoices are issued against."""

    id: UUID
    project_id: UUID
    fiscal_name: str
    tax_id: str
    country: str
    commercial_name: str | None = None
    payment_method: PaymentMethod = PaymentMethod.TRANSFER
    bank_account: str | None = None
    address: str | None = None
    email: str | None = None
    bank_certificate: Certificate = field(default_factory=Certificate)
    contractors_certificate: Certificate = field(default_factory=Certificate)
    created_at: datetime | None = None

    @property
    def display_name(self) -> str:
        return self.commercial_name or self.fiscal_name

    @property
    def has_all_certificates(self) -> bool:
        return self.bank_certificate.uploaded and self.contractors_certificate.uploaded

"""
Supplier Registry Module (``budget_modules.suppliers``).

Suppliers that purchase orders and invoices are issued against, with
their payment method and compliance certificates.
"""

from budget_modules.suppliers.models import (
    Certificate,
    CertificateStatus,
    PaymentMethod,
    Supplier,
)

__all__ = [
    "Certificate",
    "CertificateStatus",
    "PaymentMethod",
    "Supplier",
]

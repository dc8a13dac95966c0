"""Central model registry — import all models so Alembic autodiscover works."""

from payables.database import Base  # noqa: F401

from payables.models.vendor import Vendor  # noqa: F401
from payables.models.master_data import (  # noqa: F401
    Category,
    Currency,
    Entity,
    InvoiceProfile,
    PaymentType,
)
from payables.models.invoice import Invoice  # noqa: F401
from payables.models.payment import Payment  # noqa: F401
from payables.models.master_data_request import MasterDataRequest  # noqa: F401
from payables.models.audit_log import AuditLog  # noqa: F401

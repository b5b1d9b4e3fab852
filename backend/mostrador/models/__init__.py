# Import models here so Alembic can discover metadata.
from mostrador.models.user import User  # noqa: F401

from mostrador.models.organization import Organization  # noqa: F401
from mostrador.models.organization_membership import OrganizationMembership  # noqa: F401
from mostrador.models.audit_log import AuditLog  # noqa: F401
from mostrador.models.product import Product  # noqa: F401

"""
NCF Manager integration.

NCF Manager is the plan authority: it owns plan, usage and entitlement data.
"""

from ncf_connector.integrations.ncf_manager.client import (
    NcfManagerClient,
    get_ncf_manager_client,
)
from ncf_connector.integrations.ncf_manager.exceptions import (
    NcfManagerError,
    NcfManagerConnectionError,
    NcfManagerTimeoutError,
    NcfManagerResponseError,
)
from ncf_connector.integrations.ncf_manager.models import (
    PlanSnapshot,
    usage_percent,
)

__all__ = [
    # Client
    "NcfManagerClient",
    "get_ncf_manager_client",
    # Exceptions
    "NcfManagerError",
    "NcfManagerConnectionError",
    "NcfManagerTimeoutError",
    "NcfManagerResponseError",
    # Models
    "PlanSnapshot",
    "usage_percent",
]

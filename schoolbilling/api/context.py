"""Application context for API requests.

Combines the requester, the request id and a logger pre-configured with both
into a single injectable dependency.
"""

from pydantic import BaseModel, ConfigDict

from schoolbilling import schemas
from schoolbilling.core.logging import ContextualLogger


class ApiContext(BaseModel):
    """Unified context for API requests."""

    model_config = ConfigDict(arbitrary_types_allowed=True)  # For ContextualLogger

    request_id: str
    requester: schemas.Requester

    # Contextual logger with all dimensions pre-configured
    logger: ContextualLogger

    @property
    def is_system_admin(self) -> bool:
        """Whether the requester administers the whole platform."""
        return self.requester.is_system_admin

    def __str__(self) -> str:
        """String representation for logging."""
        return f"ApiContext(request_id={self.request_id[:8]}..., {self.requester})"

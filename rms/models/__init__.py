# Import all models so SQLAlchemy metadata is populated for Alembic and create_all
from rms.models.audit_event import AuditEvent
from rms.models.enums import (
    DispositionType,
    EventStatus,
    FulfillmentOperation,
    FulfillmentStatus,
    RmaStatus,
    RmsRole,
)
from rms.models.event_outbox import EventOutbox
from rms.models.fulfillment_log import FulfillmentIntegrationLog
from rms.models.processed_event import ProcessedEvent
from rms.models.rma import Rma
from rms.models.rma_line import RmaLine
from rms.models.user import User, UserBranchRole

__all__ = [
    "AuditEvent",
    "DispositionType",
    "EventOutbox",
    "EventStatus",
    "FulfillmentIntegrationLog",
    "FulfillmentOperation",
    "FulfillmentStatus",
    "ProcessedEvent",
    "Rma",
    "RmaLine",
    "RmaStatus",
    "RmsRole",
    "User",
    "UserBranchRole",
]

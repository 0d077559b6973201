import enum


class RmaStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    INFO_REQUIRED = "INFO_REQUIRED"
    CONTESTED = "CONTESTED"
    CANCELLED = "CANCELLED"
    RECEIVED = "RECEIVED"
    QC_COMPLETE = "QC_COMPLETE"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class DispositionType(str, enum.Enum):
    CREDIT = "CREDIT"
    REPLACEMENT = "REPLACEMENT"
    SCRAP = "SCRAP"
    RTV = "RTV"


class RmsRole(str, enum.Enum):
    CUSTOMER = "CUSTOMER"
    WAREHOUSE = "WAREHOUSE"
    QC = "QC"
    FINANCE = "FINANCE"
    RETURNS_AGENT = "RETURNS_AGENT"
    BRANCH_MANAGER = "BRANCH_MANAGER"
    ADMIN = "ADMIN"


class FulfillmentOperation(str, enum.Enum):
    CREDIT_MEMO = "CREDIT_MEMO"
    REPLACEMENT_ORDER = "REPLACEMENT_ORDER"


class FulfillmentStatus(str, enum.Enum):
    CREATED = "CREATED"
    STUB = "STUB"
    FAILED = "FAILED"


class EventStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

"""
Domain layer - Pure business logic with zero framework imports.

This package contains the office claiming and identity verification logic
for civic officials. It defines its own port interfaces for infrastructure
abstraction, ensuring true hexagonal architecture decoupling.
"""

from .claims import OfficeClaimRegistry
from .codes import CodeIssued, CodeIssuer
from .documents import DocumentReviewQueue
from .events import (
    DomainEvent,
    EventBus,
    FlowStateChanged,
    OfficeClaimed,
    OfficeReleased,
    ProfileStatusChanged,
    VerificationRequestUpdated,
)
from .exceptions import (
    ConflictingRequest,
    FetchError,
    InvalidSubmission,
    NotFound,
    OfficeAlreadyClaimed,
    OfficeNotClaimed,
    OfficeNotFound,
    OfficialNotFound,
    RequestNotFound,
    RequestNotReviewable,
    StoreUnavailable,
    UploadError,
    VerificationError,
)
from .flow import DebouncedSearch, ResendCooldown, VerificationFlow
from .models import (
    DOCUMENT_TYPES,
    DocumentEvidence,
    DocumentFile,
    EmailChallenge,
    GovernmentOffice,
    OfficialProfile,
    VerificationRequest,
    WebsiteChallenge,
)
from .orchestrator import (
    FlowError,
    FlowErrorKind,
    FlowOutcome,
    FlowState,
    VerificationOrchestrator,
)
from .ports import (
    ClaimResult,
    DocumentFetcher,
    EmailSender,
    MetaTagReader,
    ObjectStorage,
    OfficeRepository,
    OfficialRepository,
    ReviewOutcome,
    TokenCheck,
    VerificationMethod,
    VerificationRequestRepository,
    VerificationStatus,
    VerifyResult,
)
from .projector import ProfileStatusProjector
from .website import WebsiteTokenVerifier

__all__ = [
    "DOCUMENT_TYPES",
    "ClaimResult",
    "CodeIssued",
    "CodeIssuer",
    "ConflictingRequest",
    "DebouncedSearch",
    "DocumentEvidence",
    "DocumentFetcher",
    "DocumentFile",
    "DocumentReviewQueue",
    "DomainEvent",
    "EmailChallenge",
    "EmailSender",
    "EventBus",
    "FetchError",
    "FlowError",
    "FlowErrorKind",
    "FlowOutcome",
    "FlowState",
    "FlowStateChanged",
    "GovernmentOffice",
    "InvalidSubmission",
    "MetaTagReader",
    "NotFound",
    "ObjectStorage",
    "OfficeAlreadyClaimed",
    "OfficeClaimRegistry",
    "OfficeClaimed",
    "OfficeNotClaimed",
    "OfficeNotFound",
    "OfficeReleased",
    "OfficeRepository",
    "OfficialNotFound",
    "OfficialProfile",
    "OfficialRepository",
    "ProfileStatusChanged",
    "ProfileStatusProjector",
    "RequestNotFound",
    "RequestNotReviewable",
    "ResendCooldown",
    "ReviewOutcome",
    "StoreUnavailable",
    "TokenCheck",
    "UploadError",
    "VerificationError",
    "VerificationFlow",
    "VerificationMethod",
    "VerificationOrchestrator",
    "VerificationRequest",
    "VerificationRequestRepository",
    "VerificationRequestUpdated",
    "VerificationStatus",
    "VerifyResult",
    "WebsiteChallenge",
    "WebsiteTokenVerifier",
]

"""
Profile status projector - Single writer of official verification fields.

Every verification method reaches a profile through apply(); none of them
writes the official row directly. This is where "verified implies method
and timestamp" is enforced before anything is persisted.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from .events import EventBus, ProfileStatusChanged
from .exceptions import OfficialNotFound
from .models import OfficialProfile, utc_now
from .ports import OfficialRepository, VerificationMethod, VerificationStatus

logger = logging.getLogger(__name__)

_PROJECTABLE = frozenset(
    {
        VerificationStatus.VERIFIED,
        VerificationStatus.PENDING,
        VerificationStatus.REJECTED,
        VerificationStatus.EXPIRED,
    }
)


@dataclass
class ProfileStatusProjector:
    """Applies verification outcomes to OfficialProfile."""

    officials: OfficialRepository
    events: EventBus | None = None
    clock: Callable[[], datetime] = field(default=utc_now)

    def apply(
        self,
        official_id: UUID,
        outcome: VerificationStatus,
        method: VerificationMethod | None = None,
    ) -> OfficialProfile:
        """
        Project a verification outcome onto the official's profile.

        VERIFIED stamps verified_at and the method; any other outcome clears both.

        Raises:
            ValueError: For UNVERIFIED, or VERIFIED without a method
            OfficialNotFound: If the official does not exist
        """
        if outcome not in _PROJECTABLE:
            raise ValueError(f"Cannot project outcome {outcome.value!r}")

        if outcome is VerificationStatus.VERIFIED:
            if method is None:
                raise ValueError("A verified outcome requires the verification method")
            verified_at = self.clock()
        else:
            method = None
            verified_at = None

        profile = self.officials.update_verification(official_id, outcome, method, verified_at)
        if profile is None:
            raise OfficialNotFound(str(official_id))

        logger.info("Official %s verification status -> %s", official_id, outcome.value)
        if self.events is not None:
            self.events.publish(
                ProfileStatusChanged(official_id=official_id, status=outcome, method=method)
            )
        return profile

"""
Office claim registry - At most one official per government office.

Claiming reserves an office before its holder has proven anything; trust
is established afterwards by the verification flow. The registry is the
only path that flips GovernmentOffice.is_claimed.

Claim Lifecycle
===============

    unclaimed -> claimed(official)   claim(): compare-and-set at the store
    claimed   -> unclaimed           release(): unconditional

A failed or expired verification attempt does not release the claim; the
official keeps the office and retries with the same or another method.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from .events import EventBus, OfficeClaimed, OfficeReleased
from .exceptions import (
    OfficeAlreadyClaimed,
    OfficeNotFound,
    OfficialHoldsOffice,
    OfficialNotFound,
)
from .models import GovernmentOffice
from .ports import ClaimResult, OfficeRepository

logger = logging.getLogger(__name__)


@dataclass
class OfficeClaimRegistry:
    """
    Domain service owning the office mutual-exclusion invariant.

    Atomicity is delegated to OfficeRepository.claim(), which performs a
    single conditional update rather than a read-then-write. An official
    holds at most one office at a time.
    """

    offices: OfficeRepository
    events: EventBus | None = None
    min_query_length: int = 2
    search_limit: int = 20

    def claim(self, office_id: UUID, official_id: UUID) -> GovernmentOffice:
        """
        Claim an office for an official.

        Returns:
            The office as claimed

        Raises:
            OfficeAlreadyClaimed: If another claim won (not retried)
            OfficialHoldsOffice: If the official already holds a different office
            OfficeNotFound: If the office does not exist
            OfficialNotFound: If the official does not exist
        """
        result = self.offices.claim(office_id, official_id)

        if result is ClaimResult.ALREADY_CLAIMED:
            logger.info("Claim rejected: office %s already claimed", office_id)
            raise OfficeAlreadyClaimed(str(office_id))
        if result is ClaimResult.OFFICE_NOT_FOUND:
            raise OfficeNotFound(str(office_id))
        if result is ClaimResult.OFFICIAL_NOT_FOUND:
            raise OfficialNotFound(str(official_id))
        if result is ClaimResult.OFFICIAL_HOLDS_OFFICE:
            logger.info("Claim rejected: official %s already holds another office", official_id)
            raise OfficialHoldsOffice(str(official_id))

        logger.info("Office %s claimed by official %s", office_id, official_id)
        if self.events is not None:
            self.events.publish(OfficeClaimed(office_id=office_id, official_id=official_id))
        return self.get(office_id)

    def release(self, office_id: UUID) -> None:
        """
        Release an office claim unconditionally.

        Clears the claimed flag, the claiming-official reference and the
        holder's office link. Verification fields are not touched.

        Raises:
            OfficeNotFound: If the office does not exist
        """
        if not self.offices.release(office_id):
            raise OfficeNotFound(str(office_id))

        logger.info("Office %s released", office_id)
        if self.events is not None:
            self.events.publish(OfficeReleased(office_id=office_id))

    def is_available(self, office_id: UUID) -> bool:
        return not self.get(office_id).is_claimed

    def get(self, office_id: UUID) -> GovernmentOffice:
        office = self.offices.get(office_id)
        if office is None:
            raise OfficeNotFound(str(office_id))
        return office

    def search(self, query: str, limit: int | None = None) -> list[GovernmentOffice]:
        """Search offices by title, jurisdiction, district or incumbent name."""
        query = query.strip()
        if len(query) < self.min_query_length:
            return []
        return self.offices.search(query, limit or self.search_limit)

    def list_unclaimed(
        self, jurisdiction: str | None = None, limit: int | None = None
    ) -> list[GovernmentOffice]:
        return self.offices.list_unclaimed(jurisdiction, limit or self.search_limit)

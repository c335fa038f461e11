"""
Verification decisions for captured photos
"""

import logging
from typing import Dict, Optional, Union

from photo_verification.core.errors import PhotoNotFoundError
from photo_verification.models.photo import Verification, VerificationStatus
from photo_verification.services.photo_store import PhotoStore

logger = logging.getLogger(__name__)


class VerificationWorkflow:
    """Records pending/approved/rejected decisions on the photos of a store"""

    def __init__(self, store: PhotoStore):
        self.store = store

    def set_status(
        self,
        photo_id: str,
        status: Union[VerificationStatus, str],
        notes: Optional[str] = None
    ) -> Verification:
        """
        Set the review status of a photo

        Any status may follow any other, so a reviewer can change their mind.
        ``notes`` replaces the previous notes and clears them when omitted.
        """
        photo = self.store.get(photo_id)
        if photo is None:
            raise PhotoNotFoundError(f"Photo {photo_id} not found")

        verification = Verification(status=VerificationStatus(status), notes=notes)
        if verification != photo.verification:
            logger.info(f"✅ Photo {photo_id} marked {verification.status.value}")
        photo.verification = verification
        return verification

    def summary(self) -> Dict[str, int]:
        """Count photos per verification status"""
        counts = {status.value: 0 for status in VerificationStatus}
        for photo in self.store:
            counts[photo.verification.status.value] += 1
        return counts

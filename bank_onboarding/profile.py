"""
Profile Submitter Module

Persists personal details for an identity and uploads the optional profile
image. Never touches account or card state.
"""

import logging
from typing import Optional

from .audit import AuditTrail, AuditEventType
from .client import BankingAPIClient
from .errors import ValidationError
from .models import Profile, ProfileForm

logger = logging.getLogger("bank_onboarding.profile")


class ProfileSubmitter:
    """Sends profile updates to the banking service"""
    
    def __init__(self, client: BankingAPIClient, image_base_url: Optional[str] = None,
                 audit_trail: Optional[AuditTrail] = None):
        self.client = client
        self.image_base_url = (image_base_url or "").rstrip("/") or None
        self.audit_trail = audit_trail
    
    def submit(self, identity_id: str, form: ProfileForm) -> Profile:
        """
        Validate and persist the profile fields.
        
        Args:
            identity_id: Identity whose profile is updated
            form: Submitted personal details
            
        Returns:
            Profile enriched with the server-assigned image reference, if any
            
        Raises:
            ValidationError: Blank or malformed fields (checked before any call)
            AuthError: Missing or rejected credential
            TransientError: Network or server fault
        """
        form = form.validate()
        data = self.client.update_profile(identity_id, form.to_payload())
        profile = Profile.from_api(identity_id, data, form)
        profile.profile_image_url = self.image_url(profile.profile_image_reference)
        
        logger.info(f"Profile updated for identity {identity_id}")
        return profile
    
    def upload_image(self, identity_id: str, filename: str, content: bytes,
                     content_type: str = "image/jpeg") -> str:
        """
        Upload a profile image and return the stored image reference.
        
        Raises:
            ValidationError: Empty upload or non-image content
        """
        if not content:
            raise ValidationError("Image file is empty")
        if not content_type.startswith("image/"):
            raise ValidationError("Profile image must be an image file")
        
        data = self.client.upload_profile_image(identity_id, filename, content, content_type)
        reference = data.get('profileImageUrl')
        if not reference:
            raise ValidationError(data.get('error') or "Upload failed")
        
        if self.audit_trail:
            self.audit_trail.log_event(
                AuditEventType.PROFILE_IMAGE_UPLOADED,
                'identity',
                identity_id,
                {'image_reference': reference}
            )
        return reference
    
    def image_url(self, reference: Optional[str]) -> Optional[str]:
        """Public URL for a stored image reference"""
        if not reference:
            return None
        if reference.startswith(("http://", "https://")) or not self.image_base_url:
            return reference
        return f"{self.image_base_url}/{reference.lstrip('/')}"

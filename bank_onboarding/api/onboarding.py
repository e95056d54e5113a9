"""
Onboarding workflow endpoints

Every route acts for the identity in the path and requires the caller's
bearer credential. Entry points (profile submission, image upload) bind that
credential to the identity's session; every other route only proceeds when
the caller presents the credential the session currently holds.
"""

import logging
from fastapi import APIRouter, HTTPException, Depends, File, UploadFile, status

from .auth import OnboardingSystem, get_onboarding_system, require_bearer, unauthorized
from .schemas import (
    AccountModel, CardModel, ProfileImageResponse, ProfileRequest,
    ProvisioningStateResponse, SecretResponse, state_response
)
from ..errors import (
    AuthError, OnboardingError, SensitiveDataError, ValidationError, WorkflowStateError
)
from ..orchestrator import ProvisioningOrchestrator

logger = logging.getLogger("bank_onboarding.api")

router = APIRouter()


def _existing(system: OnboardingSystem, identity_id: str) -> ProvisioningOrchestrator:
    orchestrator = system.get_orchestrator(identity_id)
    if orchestrator is None:
        raise HTTPException(status_code=404, detail="No onboarding workflow for this identity")
    return orchestrator


def _authorized(system: OnboardingSystem, identity_id: str, credential: str) -> ProvisioningOrchestrator:
    """Existing workflow whose session holds the caller's credential"""
    orchestrator = _existing(system, identity_id)
    if not orchestrator.session.holds(credential):
        logger.warning(f"Request for identity {identity_id} rejected: credential does not match session")
        raise unauthorized("Authorization error. Please login again.")
    return orchestrator


def _bound(system: OnboardingSystem, identity_id: str, credential: str) -> ProvisioningOrchestrator:
    """Workflow for the identity with the caller's credential installed on its session"""
    orchestrator = system.orchestrator_for(identity_id)
    if not orchestrator.session.claim(credential):
        logger.warning(f"Request for identity {identity_id} rejected: session held by another credential")
        raise unauthorized("Authorization error. Please login again.")
    return orchestrator


def _http_error(e: Exception) -> HTTPException:
    """Map a workflow exception to an HTTP error"""
    if isinstance(e, WorkflowStateError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, SensitiveDataError):
        logger.error(f"Sensitive data violation: {e}")
        return HTTPException(status_code=500, detail="Internal error")
    if isinstance(e, AuthError):
        return unauthorized(e.user_message)
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=e.message)
    return HTTPException(status_code=502, detail=getattr(e, "user_message", str(e)))


@router.post("/{identity_id}/onboarding", response_model=ProvisioningStateResponse)
def submit_profile(
    identity_id: str,
    request: ProfileRequest,
    credential: str = Depends(require_bearer),
    system: OnboardingSystem = Depends(get_onboarding_system)
):
    """Submit the profile and run the onboarding attempt"""
    orchestrator = _bound(system, identity_id, credential)
    try:
        state = orchestrator.submit_profile(request.to_form())
    except (WorkflowStateError, SensitiveDataError) as e:
        raise _http_error(e)
    return state_response(state.to_dict())


@router.post("/{identity_id}/onboarding/retry", response_model=ProvisioningStateResponse)
def retry_onboarding(
    identity_id: str,
    credential: str = Depends(require_bearer),
    system: OnboardingSystem = Depends(get_onboarding_system)
):
    """Retry card issuance after a failed attempt"""
    orchestrator = _authorized(system, identity_id, credential)
    try:
        state = orchestrator.retry()
    except (WorkflowStateError, SensitiveDataError) as e:
        raise _http_error(e)
    return state_response(state.to_dict())


@router.get("/{identity_id}/onboarding", response_model=ProvisioningStateResponse)
def get_onboarding_state(
    identity_id: str,
    credential: str = Depends(require_bearer),
    system: OnboardingSystem = Depends(get_onboarding_system)
):
    """Get the current provisioning state"""
    orchestrator = _authorized(system, identity_id, credential)
    return state_response(orchestrator.state.to_dict())


@router.get("/{identity_id}/onboarding/secret", response_model=SecretResponse,
            response_model_exclude_unset=True)
def reveal_secret(
    identity_id: str,
    credential: str = Depends(require_bearer),
    system: OnboardingSystem = Depends(get_onboarding_system)
):
    """Reveal the new card; temp_pin is present on the first read only"""
    orchestrator = _authorized(system, identity_id, credential)
    try:
        card = orchestrator.reveal_secret()
    except WorkflowStateError as e:
        raise _http_error(e)
    return SecretResponse.from_reveal(card)


@router.post("/{identity_id}/onboarding/acknowledge", response_model=CardModel)
def acknowledge_secret(
    identity_id: str,
    credential: str = Depends(require_bearer),
    system: OnboardingSystem = Depends(get_onboarding_system)
):
    """Confirm the PIN was seen and complete onboarding"""
    orchestrator = _authorized(system, identity_id, credential)
    try:
        card = orchestrator.acknowledge_secret()
    except (WorkflowStateError, SensitiveDataError) as e:
        raise _http_error(e)
    return CardModel.from_card(card)


@router.delete("/{identity_id}/onboarding", response_model=ProvisioningStateResponse)
def abandon_onboarding(
    identity_id: str,
    credential: str = Depends(require_bearer),
    system: OnboardingSystem = Depends(get_onboarding_system)
):
    """Abandon the current attempt"""
    orchestrator = _authorized(system, identity_id, credential)
    try:
        state = orchestrator.abandon()
    except WorkflowStateError as e:
        raise _http_error(e)
    return state_response(state.to_dict())


@router.get("/{identity_id}/card", response_model=CardModel)
def get_card(
    identity_id: str,
    credential: str = Depends(require_bearer),
    system: OnboardingSystem = Depends(get_onboarding_system)
):
    """Get the stored card"""
    _authorized(system, identity_id, credential)
    card = system.store.get_card(identity_id)
    if not card:
        raise HTTPException(status_code=404, detail="Card not found")
    return CardModel.from_card(card)


@router.get("/{identity_id}/account", response_model=AccountModel)
def get_account(
    identity_id: str,
    credential: str = Depends(require_bearer),
    system: OnboardingSystem = Depends(get_onboarding_system)
):
    """Get the stored account"""
    _authorized(system, identity_id, credential)
    account = system.store.get_account(identity_id)
    if not account:
        raise HTTPException(status_code=404, detail="Account not found")
    return AccountModel(**account.to_dict())


@router.post("/{identity_id}/profile-image", status_code=status.HTTP_201_CREATED,
             response_model=ProfileImageResponse)
def upload_profile_image(
    identity_id: str,
    file: UploadFile = File(...),
    credential: str = Depends(require_bearer),
    system: OnboardingSystem = Depends(get_onboarding_system)
):
    """Upload a profile image for the identity"""
    orchestrator = _bound(system, identity_id, credential)

    submitter = orchestrator.profile_submitter
    try:
        reference = submitter.upload_image(
            identity_id,
            file.filename or "profile-image",
            file.file.read(),
            file.content_type or "application/octet-stream"
        )
    except AuthError as e:
        orchestrator.session.invalidate()
        raise _http_error(e)
    except OnboardingError as e:
        raise _http_error(e)

    return ProfileImageResponse(image_reference=reference, image_url=submitter.image_url(reference))

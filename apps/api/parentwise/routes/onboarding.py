from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from ..auth import AuthContext, client_ip, get_auth_context
from ..db import transaction
from ..identity import issue_session, set_session_cookie
from ..onboarding import OnboardingRequest, complete_onboarding
from ..schemas import envelope

router = APIRouter(prefix="/api", tags=["onboarding"])


@router.post("/onboarding")
async def complete_onboarding_endpoint(
    payload: OnboardingRequest,
    request: Request,
    response: Response,
    auth: AuthContext = Depends(get_auth_context),
) -> dict:
    with transaction() as conn:
        result = complete_onboarding(
            conn,
            auth.user,
            payload,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )

    set_session_cookie(response, issue_session(result.user))

    user, family, child = result.user, result.family, result.child
    return envelope(
        {
            "user": {"id": user.id, "name": user.name, "email": user.email, "timezone": user.timezone},
            "family": (
                {"id": family.id, "name": family.name, "familyCode": family.family_code} if family else None
            ),
            "child": {
                "id": child.id,
                "name": child.name,
                "dateOfBirth": child.date_of_birth.isoformat(),
                "interests": child.interests,
            },
        },
        message="Onboarding completed successfully",
    )

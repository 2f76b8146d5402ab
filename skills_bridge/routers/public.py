"""
Public routes

Landing-page statistics. Reachable anonymously; authenticated callers also
get their own role back.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from skills_bridge.db.mongo import get_db
from skills_bridge.middleware.auth import AuthResult, Authenticated, get_optional_user, get_users_repo
from skills_bridge.models import PublicStats, PublicStatsResponse, UserRole
from skills_bridge.repos.user_repos import ApplicationsRepository, UsersRepository


router = APIRouter()


async def get_applications_repo(db=Depends(get_db)) -> ApplicationsRepository:  # noqa: ANN001
    """Get the applications repository"""
    return ApplicationsRepository(db)


@router.get("/stats", response_model=PublicStatsResponse, response_model_exclude_none=True)
async def get_stats(
    auth: AuthResult = Depends(get_optional_user),
    users_repo: UsersRepository = Depends(get_users_repo),
    applications_repo: ApplicationsRepository = Depends(get_applications_repo),
) -> PublicStatsResponse:
    """
    Aggregated, read-only counts

    Success rate is hired applications over all applications, in percent with
    one decimal.
    """
    graduates = await users_repo.count({"role": UserRole.job_seeker.value})
    employers = await users_repo.count({"role": UserRole.employer.value, "isApproved": True})
    mentors = await users_repo.count({"role": UserRole.mentor.value})
    applications = await applications_repo.count()
    hires = await applications_repo.count({"status": "hired"})
    success_rate = round(hires / applications * 100, 1) if applications else 0.0

    return PublicStatsResponse(
        data=PublicStats(
            total_graduates=graduates,
            total_employers=employers,
            total_mentors=mentors,
            success_rate=success_rate,
            viewer_role=auth.user.role if isinstance(auth, Authenticated) else None,
        )
    )

from typing import List

from loguru import logger

from se_migrator.backends.base_backend import ExtractionBackend, SessionExpiredError
from se_migrator.models.preview import (
    MigrationPreview,
    OrganizationPreview,
    PreviewSummary,
)


class PreviewAggregator:
    """Rolls organizations, teams and roster counts up into one migration preview."""

    def __init__(self, backend: ExtractionBackend):
        self.backend = backend

    async def preview(self, token: str) -> MigrationPreview:
        organizations = await self.backend.get_organizations(token)
        summary = PreviewSummary(organization_count=len(organizations))
        previews: List[OrganizationPreview] = []

        for org in organizations:
            try:
                teams = await self.backend.get_teams_for_organization(token, org.id)
            except SessionExpiredError:
                raise
            except Exception as e:
                # One organization's failure leaves it in the preview with no teams
                logger.error(f"Error getting teams for organization {org.id}: {e}")
                teams = []

            summary.team_count += len(teams)
            for team in teams:
                summary.player_count += team.player_count
                summary.staff_count += team.staff_count
            previews.append(OrganizationPreview(**org.model_dump(), teams=teams))

        logger.info(
            f"Preview: {summary.organization_count} organizations, {summary.team_count} teams, "
            f"{summary.player_count} players, {summary.staff_count} staff."
        )
        return MigrationPreview(organizations=previews, summary=summary)

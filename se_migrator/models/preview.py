# se_migrator/models/preview.py
from typing import List

from .base import CamelModel
from .organization import Organization
from .team import Team


class OrganizationPreview(Organization):
    teams: List[Team] = []


class PreviewSummary(CamelModel):
    organization_count: int = 0
    team_count: int = 0
    player_count: int = 0
    staff_count: int = 0


class MigrationPreview(CamelModel):
    organizations: List[OrganizationPreview] = []
    summary: PreviewSummary = PreviewSummary()

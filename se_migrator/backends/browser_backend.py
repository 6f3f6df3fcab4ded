from typing import List

from loguru import logger

from se_migrator.models.organization import Organization
from se_migrator.models.results import AuthResult, CredentialCheck
from se_migrator.models.roster import Roster
from se_migrator.models.session import SessionState
from se_migrator.models.team import ExtractedData, Team
from se_migrator.scrapers.sportsengine_scraper import SportsEngineScraper
from se_migrator.sessions.store import SessionStore

from .base_backend import AuthenticationError, ExtractionBackend, ExtractionError


class BrowserExtractionBackend(ExtractionBackend):
    """Drives SportsEngine directly with a headless browser.

    Every call blocks until the scrape finishes. Whatever is scraped is cached
    on the session, so repeated calls (preview, then migrate) hit the site once.
    """

    name = "browser"

    def __init__(self, store: SessionStore, scraper: SportsEngineScraper):
        super().__init__(store)
        self.scraper = scraper

    @staticmethod
    def _cache(session: SessionState) -> ExtractedData:
        if session.cached_extraction is None:
            session.cached_extraction = ExtractedData()
        return session.cached_extraction

    async def authenticate(self, email: str, password: str) -> AuthResult:
        try:
            credentials = await self.scraper.authenticate(email, password)
        except AuthenticationError as e:
            return AuthResult(success=False, message=str(e))
        token = self.store.create(email, credentials)
        return AuthResult(success=True, token=token, session_data={"token": token})

    async def validate_credentials(self, email: str, password: str) -> CredentialCheck:
        try:
            await self.scraper.authenticate(email, password)
        except AuthenticationError as e:
            return CredentialCheck(valid=False, message=str(e))
        return CredentialCheck(valid=True, message="Credentials are valid")

    async def get_organizations(self, token: str) -> List[Organization]:
        session = self.require_session(token)
        cached = session.cached_extraction
        if cached is not None and (cached.organizations or cached.teams):
            logger.debug(f"Serving organizations for {session.email} from cache.")
            return cached.list_organizations()

        organizations = await self.scraper.list_organizations(session.credentials)
        session.cached_extraction = ExtractedData(organizations=organizations)
        self.store.touch(token)
        return organizations

    async def _find_organization(self, token: str, organization_id: str) -> Organization:
        for organization in await self.get_organizations(token):
            if organization.id == organization_id:
                return organization
        raise ExtractionError(f"Organization {organization_id} was not found")

    async def get_teams_for_organization(
        self, token: str, organization_id: str
    ) -> List[Team]:
        session = self.require_session(token)
        cached = self._cache(session).teams_for(organization_id)
        if cached is not None:
            return [t.to_team(organization_id) for t in cached]

        organization = await self._find_organization(token, organization_id)
        teams = await self.scraper.list_teams(session.credentials, organization)
        self._cache(session).store_teams(organization_id, teams)
        self.store.touch(token)
        return [t.to_team(organization_id) for t in teams]

    async def get_team_roster(self, token: str, team_id: str) -> Roster:
        session = self.require_session(token)
        team = self._cache(session).find_team(team_id)
        if team is not None and team.roster_loaded:
            return team.roster()

        roster = await self.scraper.get_roster(
            session.credentials, team_id, team.url if team else None
        )
        self._cache(session).store_roster(team_id, roster)
        self.store.touch(token)
        return roster

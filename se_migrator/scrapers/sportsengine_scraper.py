# se_migrator/scrapers/sportsengine_scraper.py

from typing import List, Optional, Sequence

from loguru import logger

from se_migrator.backends.base_backend import (
    AuthenticationError,
    ExtractionError,
    SessionExpiredError,
)
from se_migrator.config.settings import AppSettings
from se_migrator.models.organization import Organization
from se_migrator.models.roster import Roster
from se_migrator.models.session import SessionCredentials
from se_migrator.models.team import ExtractedTeam

from .browser import BrowserConfig, PageDriver, open_page
from .parsers import (
    is_login_url,
    is_onboarding_url,
    make_soup,
    parse_login_error,
    parse_organizations,
    parse_roster,
    parse_team_page,
)
from .selectors import (
    AttributeMatcher,
    SelectorStep,
    StructuralMatcher,
    TextMatcher,
    select_in,
)

# --- Selector steps for the live pages ---

LOGIN_FIELD = SelectorStep(
    "login field",
    (
        AttributeMatcher(tag="input", attribute="name", value="user[login]"),
        AttributeMatcher(tag="input", attribute="id", value="user_login"),
        AttributeMatcher(tag="input", attribute="type", value="email"),
        AttributeMatcher(tag="input", attribute="name", value="login"),
        AttributeMatcher(tag="input", attribute="placeholder", value="mail", contains=True),
        AttributeMatcher(tag="input", attribute="type", value="text"),
    ),
)

CONTINUE_BUTTON = SelectorStep(
    "continue button",
    (
        StructuralMatcher(css="button.pl-button--highlight"),
        AttributeMatcher(tag="button", attribute="type", value="submit"),
        AttributeMatcher(tag="input", attribute="type", value="submit"),
        AttributeMatcher(tag="input", attribute="name", value="commit"),
        TextMatcher(text="Continue", tags=("button",)),
        TextMatcher(text="Next", tags=("button",)),
    ),
    required=False,
)

PASSWORD_FIELD = SelectorStep(
    "password field",
    (
        AttributeMatcher(tag="input", attribute="name", value="user[password]"),
        AttributeMatcher(tag="input", attribute="id", value="user_password"),
        AttributeMatcher(tag="input", attribute="type", value="password"),
        AttributeMatcher(tag="input", attribute="name", value="password"),
    ),
)

SUBMIT_BUTTON = SelectorStep(
    "sign-in button",
    (
        StructuralMatcher(css="button.pl-button--highlight"),
        AttributeMatcher(tag="button", attribute="type", value="submit"),
        AttributeMatcher(tag="input", attribute="type", value="submit"),
        AttributeMatcher(tag="button", attribute="name", value="commit"),
        TextMatcher(text="Sign In", tags=("button", "input")),
        TextMatcher(text="Log In", tags=("button", "input")),
    ),
)

SKIP_ONBOARDING = SelectorStep(
    "skip onboarding link",
    (
        AttributeMatcher(tag="a", attribute="href", value="skip", contains=True),
        StructuralMatcher(css=".skip-link, .continue-link"),
        TextMatcher(text="Skip", tags=("a", "button")),
        TextMatcher(text="Continue", tags=("a",)),
    ),
    required=False,
)

TEAMS_NAV = SelectorStep(
    "teams navigation link",
    (
        AttributeMatcher(tag="a", attribute="href", value="/user/my-teams"),
        StructuralMatcher(css='.se-fe-left-nav__menu-item a[href*="my-teams"]'),
        AttributeMatcher(tag="a", attribute="href", value="my-teams", contains=True),
        TextMatcher(text="Teams", tags=("a",), exact=True),
    ),
    required=False,
)

ROSTER_NAV = SelectorStep(
    "roster link",
    (
        StructuralMatcher(css='.team-nav a[href*="roster"]'),
        AttributeMatcher(tag="a", attribute="href", value="roster", contains=True),
        TextMatcher(text="Roster", tags=("a",), exact=True),
    ),
    required=False,
)

ACCOUNT_NAME = SelectorStep(
    "account name",
    (
        StructuralMatcher(css=".se-fe-avatar__name"),
        StructuralMatcher(css=".user-name, .account-name"),
    ),
    required=False,
)


class SportsEngineScraper:
    """Drives a real browser through SportsEngine: login, navigation, extraction.

    Every public method opens its own isolated browser and closes it before
    returning, so no browser outlives a call.
    """

    def __init__(self, app_settings: AppSettings):
        self.settings = app_settings
        self.browser_config = BrowserConfig(
            headless=app_settings.browser_headless,
            executable_path=app_settings.browser_executable_path,
            selector_timeout_ms=app_settings.selector_timeout_ms,
            navigation_timeout_ms=app_settings.navigation_timeout_ms,
            screenshot_dir=app_settings.debug_screenshot_dir,
        )

    def _page(self, credentials: Optional[SessionCredentials] = None):
        cookies = credentials.cookies if credentials else ()
        return open_page(self.browser_config, cookies)

    async def _open_authenticated(self, driver: PageDriver, url: str) -> None:
        await driver.goto(url)
        if is_login_url(driver.url):
            logger.warning(f"Redirected to login while loading {url}; site session is gone.")
            raise SessionExpiredError(
                "SportsEngine session is no longer valid, please reauthenticate"
            )

    # --- Login ---

    async def authenticate(self, email: str, password: str) -> SessionCredentials:
        """Log in with the two-step SportsEngine form and return the session cookies.

        Raises AuthenticationError when the site rejects the credentials or a
        required login element is never found.
        """
        logger.info(f"Logging in to SportsEngine as {email}")
        async with self._page() as driver:
            await driver.goto(self.settings.sportsengine_login_url)
            await driver.fill(LOGIN_FIELD, email, AuthenticationError)

            # Two-step form: the password field only shows after "Continue"
            if await driver.locate(PASSWORD_FIELD.with_required(False)) is None:
                await driver.click(CONTINUE_BUTTON)

            await driver.fill(PASSWORD_FIELD, password, AuthenticationError)
            await driver.click(SUBMIT_BUTTON, AuthenticationError)

            if is_login_url(driver.url):
                message = parse_login_error(await driver.content()) or "Invalid credentials"
                logger.warning(f"Login rejected for {email}: {message}")
                raise AuthenticationError(message)

            if is_onboarding_url(driver.url):
                logger.info("Landed on account onboarding; trying to skip it.")
                if not await driver.click(SKIP_ONBOARDING):
                    logger.info("No skip link found; going straight to the dashboard.")

            await driver.goto(self.settings.sportsengine_dashboard_url)
            if is_login_url(driver.url):
                raise AuthenticationError("Login did not reach the SportsEngine dashboard")

            cookies = await driver.cookies()
            logger.success(f"Logged in as {email} ({len(cookies)} cookies kept).")
            return SessionCredentials(cookies=cookies)

    # --- Navigation and extraction ---

    async def list_organizations(
        self, credentials: SessionCredentials, exclude_labels: Sequence[str] = ()
    ) -> List[Organization]:
        async with self._page(credentials) as driver:
            await self._open_authenticated(driver, self.settings.sportsengine_dashboard_url)

            hit = select_in(make_soup(await driver.content()), ACCOUNT_NAME)
            excluded = list(exclude_labels)
            if hit:
                # The account holder's own name is linked on the dashboard too
                excluded.append(hit.first.get_text(" ", strip=True))

            try:
                clicked = await driver.click(TEAMS_NAV)
            except ExtractionError as e:
                logger.warning(f"Teams link did not load ({e}); opening My Teams directly.")
                clicked = False
            if not clicked:
                await self._open_authenticated(driver, self.settings.sportsengine_my_teams_url)

            return parse_organizations(await driver.content(), driver.url, excluded)

    async def list_teams(
        self, credentials: SessionCredentials, organization: Organization
    ) -> List[ExtractedTeam]:
        """Teams under an organization, each with the roster found on its page.

        Dashboard entries are individual teams, so an organization yields the
        one team its page describes.
        """
        if not organization.url:
            raise ExtractionError(f"Organization {organization.name} has no page to open")

        async with self._page(credentials) as driver:
            await self._open_authenticated(driver, organization.url)
            await driver.click(ROSTER_NAV)
            team = parse_team_page(
                await driver.content(), driver.url, organization.id, team_id=organization.id
            )
            if team.name == "Unknown Team":
                team.name = organization.name
            logger.info(
                f"Extracted team {team.name}: {len(team.players)} players, {len(team.staff)} staff."
            )
            return [team]

    async def get_roster(
        self,
        credentials: SessionCredentials,
        team_id: str,
        team_url: Optional[str] = None,
    ) -> Roster:
        url = team_url or (
            f"{self.settings.sportsengine_dashboard_url}/competition/rostering/teams/{team_id}"
        )
        async with self._page(credentials) as driver:
            await self._open_authenticated(driver, url)
            if team_url:
                await driver.click(ROSTER_NAV)
            return parse_roster(await driver.content())

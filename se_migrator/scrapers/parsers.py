"""Pure DOM -> entity extraction for SportsEngine pages.

Nothing in here touches a browser: every function takes an HTML string (or a
parsed soup) captured by the browser shell and returns typed entities. Each
extraction runs its primary selector step first and, when that yields nothing
usable, falls back to a broader whole-page scan filtered by exclusion rules.
"""

import re
from typing import Iterable, List, Optional, Sequence
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag
from loguru import logger

from se_migrator.models.organization import Organization
from se_migrator.models.roster import Player, Roster, Staff
from se_migrator.models.team import ExtractedTeam
from se_migrator.utils.misc_utils import collapse_whitespace, generate_canonical_id

from .selectors import (
    AttributeMatcher,
    SelectorStep,
    StructuralMatcher,
    select_in,
)

MIN_LABEL_LENGTH = 4

# Link text that never names an organization or team
EXCLUDED_LINK_SUBSTRINGS = ("see all", "showing", "download", "sign out", "log out")
EXCLUDED_LINK_LABELS = {"teams", "my teams", "roster", "home", "help", "settings"}

TEAM_HREF_MARKERS = ("teamservice", "/team/", "/teams/", "team-")

TEAM_ID_PATTERNS = (
    re.compile(r"team[/-](\d+)", re.IGNORECASE),
    re.compile(r"TeamService[^-]*-([^-/?#]+)"),
    re.compile(r"/teams/([0-9a-f]{8}-[0-9a-f-]{27,})", re.IGNORECASE),
)

KNOWN_SPORTS = (
    "Football",
    "Flag Football",
    "Soccer",
    "Basketball",
    "Baseball",
    "Softball",
    "Hockey",
    "Lacrosse",
    "Volleyball",
    "Wrestling",
    "Swimming",
    "Rugby",
)

HEADER_WORDS = ("name", "player", "staff", "title")


ORGANIZATION_LINKS = SelectorStep(
    "organization links",
    (
        StructuralMatcher(css=".team-card a[href], .team-item a[href]"),
        StructuralMatcher(css="a.team-link[href]"),
        AttributeMatcher(tag="a", attribute="href", value="teams.sportngin.com", contains=True),
        AttributeMatcher(tag="a", attribute="href", value="team", contains=True),
    ),
    many=True,
)

TEAM_NAME = SelectorStep(
    "team name",
    (
        StructuralMatcher(css=".sidebar h2"),
        StructuralMatcher(css=".team-title"),
        StructuralMatcher(css=".team-name"),
        StructuralMatcher(css="h1"),
    ),
    required=False,
)

PLAYER_ROWS = SelectorStep(
    "player rows",
    (
        StructuralMatcher(css="[data-player-id]"),
        StructuralMatcher(css=".player-row, .roster-player"),
    ),
    required=False,
    many=True,
)

STAFF_ROWS = SelectorStep(
    "staff rows",
    (
        StructuralMatcher(css="[data-staff-id]"),
        StructuralMatcher(css=".staff-row, .roster-staff"),
    ),
    required=False,
    many=True,
)

LOGIN_ERROR = SelectorStep(
    "login error banner",
    (
        StructuralMatcher(css=".alert-danger"),
        StructuralMatcher(css=".alert-error"),
        StructuralMatcher(css=".error"),
        StructuralMatcher(css="[role='alert']"),
    ),
    required=False,
    many=True,
)


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def _text(el: Optional[Tag]) -> str:
    return collapse_whitespace(el.get_text(" ", strip=True)) if el is not None else ""


def _first_text(el: Tag, css: str) -> str:
    return _text(el.select_one(css))


# --- URL and label heuristics ---


def is_login_url(url: str) -> bool:
    return "sign_in" in url or "login" in url


def is_onboarding_url(url: str) -> bool:
    return "mfa-onboarding" in url or "setup" in url


def team_id_from_url(url: str) -> Optional[str]:
    for pattern in TEAM_ID_PATTERNS:
        match = pattern.search(url or "")
        if match:
            return match.group(1)
    return None


def is_entity_label(label: str, exclude_labels: Iterable[str] = ()) -> bool:
    """True when a link label plausibly names an organization or team."""
    if len(label) < MIN_LABEL_LENGTH:
        return False
    lowered = label.lower()
    if lowered in EXCLUDED_LINK_LABELS:
        return False
    if any(fragment in lowered for fragment in EXCLUDED_LINK_SUBSTRINGS):
        return False
    return lowered not in {x.lower() for x in exclude_labels if x}


def guess_sport(*texts: str) -> Optional[str]:
    haystack = " ".join(t for t in texts if t).lower()
    # Longest names first so "Flag Football" wins over "Football"
    for sport in sorted(KNOWN_SPORTS, key=len, reverse=True):
        if sport.lower() in haystack:
            return sport
    return None


def guess_gender(*texts: str) -> str:
    haystack = f" {' '.join(t for t in texts if t).lower()} "
    if any(w in haystack for w in (" girls", " women", " womens", " female", " lady")):
        return "Female"
    if any(w in haystack for w in (" boys", " men ", " mens", " male ")):
        return "Male"
    if "coed" in haystack or "co-ed" in haystack or "mixed" in haystack:
        return "Mixed"
    return "Unknown"


# --- Organizations ---


def _organization_from_link(
    link: Tag, base_url: str, exclude_labels: Sequence[str]
) -> Optional[Organization]:
    label = _text(link.select_one(".team-name, h3, h4, h5")) or _text(link)
    href = link.get("href")
    if not href or not is_entity_label(label, exclude_labels):
        return None
    url = urljoin(base_url, href)
    org_id = team_id_from_url(url) or generate_canonical_id(label)
    return Organization(
        id=org_id,
        name=label,
        description=f"Team: {label}",
        type="team",
        url=url,
        sport=guess_sport(label),
    )


def _dedupe(organizations: Iterable[Organization]) -> List[Organization]:
    seen = {}
    for org in organizations:
        seen.setdefault(org.id, org)
    return list(seen.values())


def parse_organizations(
    html: str, base_url: str, exclude_labels: Sequence[str] = ()
) -> List[Organization]:
    """Extract the organizations/teams listed on the "My Teams" page."""
    soup = make_soup(html)
    organizations: List[Organization] = []

    hit = select_in(soup, ORGANIZATION_LINKS)
    if hit:
        organizations = _dedupe(
            org
            for link in hit.hits
            if (org := _organization_from_link(link, base_url, exclude_labels))
        )

    if not organizations:
        logger.info("No organizations from primary selectors; scanning every link on the page.")
        organizations = _dedupe(
            org
            for link in soup.find_all("a", href=True)
            if any(m in link["href"].lower() for m in TEAM_HREF_MARKERS)
            and (org := _organization_from_link(link, base_url, exclude_labels))
        )

    logger.info(f"Parsed {len(organizations)} organizations.")
    return organizations


# --- Rosters ---


def _member_id(el: Tag, *attributes: str) -> Optional[str]:
    for attribute in attributes:
        value = el.get(attribute)
        if value:
            return str(value)
    return None


def _player_from_element(el: Tag) -> Optional[Player]:
    name = _first_text(el, ".player-name, .name") or _text(el)
    if not name:
        return None
    jersey = el.get("data-jersey") or _first_text(el, ".jersey, .number, [data-jersey]")
    return Player(
        name=name,
        jersey_number=str(jersey or ""),
        position=_first_text(el, ".position, .pos"),
        roster_status=_first_text(el, ".status, .roster-status").lower() or "active",
        profile_id=_member_id(el, "data-player-id", "data-profile-id"),
    )


def _staff_from_element(el: Tag) -> Optional[Staff]:
    name = _first_text(el, ".staff-name, .name") or _text(el)
    if not name:
        return None
    return Staff(
        name=name,
        title=_first_text(el, ".title, .role, .position") or "Staff",
        roster_status=_first_text(el, ".status, .roster-status").lower() or "active",
        profile_id=_member_id(el, "data-staff-id", "data-profile-id"),
    )


def _column(headers: List[str], *names: str) -> Optional[int]:
    for index, header in enumerate(headers):
        if any(name in header for name in names):
            return index
    return None


def _cell(cells: List[str], index: Optional[int]) -> str:
    if index is None or index >= len(cells):
        return ""
    return cells[index]


def _scan_tables(soup: BeautifulSoup) -> Roster:
    """Whole-page fallback: read every table, using header labels when present."""
    players: List[Player] = []
    staff: List[Staff] = []

    for table in soup.find_all("table"):
        header_row = table.select_one("thead tr") or table.find("tr")
        headers = (
            [_text(c).lower() for c in header_row.find_all(["th", "td"])]
            if header_row is not None and header_row.find("th") is not None
            else []
        )
        is_staff_table = any(h in ("title", "role") or "staff" in h for h in headers)
        name_col = _column(headers, "name", "player", "staff") if headers else 0
        number_col = _column(headers, "#", "no", "number", "jersey") if headers else 1
        position_col = _column(headers, "pos") if headers else 2
        title_col = _column(headers, "title", "role")

        for row in table.find_all("tr"):
            if row is header_row and headers:
                continue
            cells = [_text(c) for c in row.find_all(["td", "th"])]
            name = _cell(cells, name_col if name_col is not None else 0)
            if len(name) <= 1 or name.lower() in HEADER_WORDS:
                continue
            if is_staff_table:
                staff.append(Staff(name=name, title=_cell(cells, title_col) or "Staff"))
            elif headers or len(cells) >= 3:
                players.append(
                    Player(
                        name=name,
                        jersey_number=_cell(cells, number_col),
                        position=_cell(cells, position_col),
                    )
                )

    return Roster(players=players, staff=staff)


def parse_roster(html: str) -> Roster:
    """Extract players and staff from a roster page."""
    soup = make_soup(html)

    players: List[Player] = []
    hit = select_in(soup, PLAYER_ROWS)
    if hit:
        players = [p for el in hit.hits if (p := _player_from_element(el))]

    staff: List[Staff] = []
    hit = select_in(soup, STAFF_ROWS)
    if hit:
        staff = [s for el in hit.hits if (s := _staff_from_element(el))]

    if not players:
        logger.info("No players from roster selectors; scanning page tables.")
        scanned = _scan_tables(soup)
        players = scanned.players
        staff = staff or scanned.staff

    logger.info(f"Parsed roster with {len(players)} players and {len(staff)} staff.")
    return Roster(players=players, staff=staff)


def parse_team_page(
    html: str, url: str, organization_id: str, team_id: Optional[str] = None
) -> ExtractedTeam:
    """Extract a team (name, sport, gender and roster) from its roster/detail page."""
    soup = make_soup(html)

    hit = select_in(soup, TEAM_NAME)
    name = _text(hit.first) if hit else ""
    if not name and soup.title is not None:
        name = collapse_whitespace(soup.title.get_text()).split(" - ")[0]
    name = name or "Unknown Team"

    roster = parse_roster(html)
    page_text = _text(soup.body) if soup.body is not None else ""
    return ExtractedTeam(
        id=team_id or team_id_from_url(url) or organization_id,
        name=name,
        url=url,
        sport=guess_sport(name) or guess_sport(page_text[:2000]) or "Unknown",
        gender=guess_gender(name),
        organization_id=organization_id,
        players=roster.players,
        staff=roster.staff,
    )


def parse_login_error(html: str) -> Optional[str]:
    """Text of the error banner shown after a failed login, if any."""
    hit = select_in(make_soup(html), LOGIN_ERROR)
    if not hit:
        return None
    return next((t for t in (_text(el) for el in hit.hits) if t), None)

import pytest
from bs4 import BeautifulSoup

from se_migrator.scrapers.selectors import (
    AttributeMatcher,
    Matcher,
    MatcherKind,
    SelectorStep,
    StructuralMatcher,
    TextMatcher,
    cascade,
    cascade_async,
    select_in,
)

LOGIN_PAGE = """
<form>
  <input type="text" name="search">
  <input type="text" name="email_address" placeholder="Email">
  <button type="submit">Continue</button>
  <a href="/help">Help</a>
</form>
"""


def soup(html):
    return BeautifulSoup(html, "html.parser")


def test_falls_through_to_third_matcher_with_same_result_as_direct_step():
    third = AttributeMatcher(tag="input", attribute="name", value="email_address")
    step = SelectorStep(
        "login field",
        (
            AttributeMatcher(tag="input", attribute="name", value="user[login]"),
            AttributeMatcher(tag="input", attribute="id", value="user_login"),
            third,
        ),
    )
    page = soup(LOGIN_PAGE)

    hit = select_in(page, step)
    direct = select_in(page, step.with_matchers(third))

    assert hit.index == 2
    assert hit.matcher == third
    assert hit.hits == direct.hits


def test_single_element_step_skips_ambiguous_matcher():
    step = SelectorStep(
        "login field",
        (
            AttributeMatcher(tag="input", attribute="type", value="text"),
            AttributeMatcher(tag="input", attribute="placeholder", value="mail", contains=True),
        ),
    )

    hit = select_in(soup(LOGIN_PAGE), step)

    assert hit.index == 1
    assert hit.first["name"] == "email_address"


def test_collection_step_accepts_many_hits():
    step = SelectorStep("inputs", (StructuralMatcher(css="input"),), many=True)

    hit = select_in(soup(LOGIN_PAGE), step)

    assert len(hit.hits) == 2


def test_no_matcher_resolves_returns_none():
    step = SelectorStep("roster link", (TextMatcher(text="Roster", tags=("a",)),), required=False)

    assert select_in(soup(LOGIN_PAGE), step) is None


def test_text_matcher_is_case_insensitive():
    hits = TextMatcher(text="continue", tags=("button",)).select(soup(LOGIN_PAGE))

    assert [h.get_text() for h in hits] == ["Continue"]


def test_failing_matcher_counts_as_no_match():
    first = StructuralMatcher(css="broken")
    second = StructuralMatcher(css="input")
    step = SelectorStep("field", (first, second))

    def resolve(matcher):
        if matcher is first:
            raise TimeoutError("not attached")
        return ["element"]

    hit = cascade(step, resolve)

    assert hit.matcher is second


@pytest.mark.asyncio
async def test_async_cascade_uses_same_acceptance_rules():
    step = SelectorStep(
        "nav",
        (StructuralMatcher(css="a.one"), StructuralMatcher(css="a.two")),
    )
    answers = {"a.one": ["x", "y"], "a.two": ["z"]}

    async def resolve(matcher):
        return answers[matcher.selector]

    hit = await cascade_async(step, resolve)

    assert hit.index == 1
    assert hit.first == "z"


@pytest.mark.parametrize(
    "matcher, selector",
    [
        (AttributeMatcher(tag="input", attribute="name", value="user[login]"), 'input[name="user[login]"]'),
        (AttributeMatcher(tag="input", attribute="id", value="user_login"), "input#user_login"),
        (AttributeMatcher(tag="a", attribute="href", value="my-teams", contains=True), 'a[href*="my-teams"]'),
        (TextMatcher(text="Teams", tags=("a",), exact=True), 'a:text-is("Teams")'),
        (TextMatcher(text="Skip", tags=("a", "button")), 'a:has-text("Skip"), button:has-text("Skip")'),
    ],
)
def test_playwright_selectors(matcher, selector):
    assert matcher.selector == selector


def test_base_matcher_cannot_be_instantiated():
    with pytest.raises(TypeError):
        Matcher(kind=MatcherKind.STRUCTURAL)

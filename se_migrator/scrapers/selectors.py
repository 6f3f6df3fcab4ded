"""Selector cascade: ordered element-locating strategies with graceful fallback.

Every extraction step (a login field, a submit button, a navigation link, a
roster table) is described by a `SelectorStep` holding an ordered tuple of
matchers. `cascade()` walks them in order and takes the first one whose hits
satisfy the step. The same matchers serve two worlds:

* `Matcher.select(soup)` runs against a BeautifulSoup DOM snapshot (pure,
  used by the parsers and in tests against captured HTML);
* `Matcher.selector` is a Playwright selector string used by the browser
  shell to wait for, click and fill live elements.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Generic, List, Optional, Sequence, Tuple, TypeVar

from bs4 import Tag
from loguru import logger

T = TypeVar("T")


class MatcherKind(str, Enum):
    ATTRIBUTE = "attribute"
    STRUCTURAL = "structural"
    TEXT = "text"


@dataclass(frozen=True)
class Matcher(ABC):
    kind: MatcherKind

    @property
    @abstractmethod
    def selector(self) -> str:
        """Playwright selector string for the live page."""

    @abstractmethod
    def select(self, soup: Tag) -> List[Tag]:
        """Matches in a DOM snapshot."""

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.selector}"


@dataclass(frozen=True)
class AttributeMatcher(Matcher):
    """Element whose attribute equals (or contains) a value, e.g. input[name="user[login]"]."""

    tag: str = "*"
    attribute: str = "name"
    value: str = ""
    contains: bool = False
    kind: MatcherKind = MatcherKind.ATTRIBUTE

    @property
    def selector(self) -> str:
        op = "*=" if self.contains else "="
        escaped = self.value.replace('"', '\\"')
        tag = "" if self.tag == "*" else self.tag
        if self.attribute == "id" and not self.contains:
            return f"{tag}#{self.value}"
        return f'{tag}[{self.attribute}{op}"{escaped}"]'

    def select(self, soup: Tag) -> List[Tag]:
        def attr_matches(value) -> bool:
            if value is None:
                return False
            if isinstance(value, list):
                value = " ".join(value)
            return self.value in value if self.contains else value == self.value

        name = True if self.tag == "*" else self.tag
        return soup.find_all(name, attrs={self.attribute: attr_matches})


@dataclass(frozen=True)
class StructuralMatcher(Matcher):
    """Known structural CSS selector, e.g. '.se-fe-left-nav__menu-item a'."""

    css: str = ""
    kind: MatcherKind = MatcherKind.STRUCTURAL

    @property
    def selector(self) -> str:
        return self.css

    def select(self, soup: Tag) -> List[Tag]:
        return soup.select(self.css)


@dataclass(frozen=True)
class TextMatcher(Matcher):
    """Element of one of `tags` whose visible text matches `text`, case-insensitively."""

    text: str = ""
    tags: Tuple[str, ...] = ("a", "button")
    exact: bool = False
    kind: MatcherKind = MatcherKind.TEXT

    @property
    def selector(self) -> str:
        escaped = self.text.replace('"', '\\"')
        pseudo = f':text-is("{escaped}")' if self.exact else f':has-text("{escaped}")'
        return ", ".join(f"{tag}{pseudo}" for tag in self.tags)

    def matches_text(self, text: str) -> bool:
        label = " ".join((text or "").split()).lower()
        wanted = self.text.lower()
        return label == wanted if self.exact else wanted in label

    def select(self, soup: Tag) -> List[Tag]:
        return [
            el
            for el in soup.find_all(list(self.tags))
            if self.matches_text(el.get_text(" ", strip=True))
        ]


@dataclass(frozen=True)
class SelectorStep:
    """One extraction step and its ordered candidate matchers.

    `many=False` steps need exactly one visible match (a field, a button);
    `many=True` steps accept the first matcher yielding any matches (rows, links).
    Optional steps may fail silently; callers raise for required ones.
    """

    name: str
    matchers: Tuple[Matcher, ...]
    required: bool = True
    many: bool = False

    def accepts(self, hit_count: int) -> bool:
        return hit_count >= 1 if self.many else hit_count == 1

    def with_matchers(self, *matchers: Matcher) -> "SelectorStep":
        return SelectorStep(self.name, tuple(matchers), self.required, self.many)

    def with_required(self, required: bool) -> "SelectorStep":
        return SelectorStep(self.name, self.matchers, required, self.many)


@dataclass
class CascadeHit(Generic[T]):
    step: SelectorStep
    matcher: Matcher
    index: int
    hits: List[T]

    @property
    def first(self) -> T:
        return self.hits[0]


def cascade(
    step: SelectorStep, resolve: Callable[[Matcher], Sequence[T]]
) -> Optional[CascadeHit[T]]:
    """Try each matcher of `step` in order; return the first accepted hit set, else None.

    `resolve` maps one matcher to its matches. A resolve that raises counts
    as no match for that matcher.
    """
    for index, matcher in enumerate(step.matchers):
        try:
            hits = list(resolve(matcher))
        except Exception as e:
            logger.debug(f"[{step.name}] matcher {matcher} failed: {e}")
            continue
        if step.accepts(len(hits)):
            logger.debug(
                f"[{step.name}] resolved by matcher #{index} ({matcher}) with {len(hits)} hit(s)"
            )
            return CascadeHit(step=step, matcher=matcher, index=index, hits=hits)
        logger.debug(f"[{step.name}] matcher {matcher} gave {len(hits)} hit(s); skipping")
    logger.debug(f"[{step.name}] no matcher resolved")
    return None


def select_in(soup: Tag, step: SelectorStep) -> Optional[CascadeHit[Tag]]:
    """Run `step` against a DOM snapshot."""
    return cascade(step, lambda matcher: matcher.select(soup))


async def cascade_async(
    step: SelectorStep, resolve: Callable[[Matcher], Awaitable[Sequence[T]]]
) -> Optional[CascadeHit[T]]:
    """`cascade()` for resolvers that must await the page (live browser elements)."""
    for index, matcher in enumerate(step.matchers):
        try:
            hits = list(await resolve(matcher))
        except Exception as e:
            logger.debug(f"[{step.name}] matcher {matcher} failed: {e}")
            continue
        if step.accepts(len(hits)):
            logger.debug(
                f"[{step.name}] resolved by matcher #{index} ({matcher}) with {len(hits)} hit(s)"
            )
            return CascadeHit(step=step, matcher=matcher, index=index, hits=hits)
        logger.debug(f"[{step.name}] matcher {matcher} gave {len(hits)} hit(s); skipping")
    logger.debug(f"[{step.name}] no matcher resolved")
    return None

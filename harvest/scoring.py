"""
Candidate URL scoring.

Every URL observed while resolving a match is scored against an ordered rule
table. Terminal rules (junk, ads, bot walls) pin the score to a fixed floor;
the remaining rules add up. The same ``score_candidate``/``pick_best_url``
pair serves both providers; only the vocabulary used to build the table
differs.

    rules = build_rules(PRIMARY_VOCABULARY, blocklist)
    best = pick_best_url(urls, rules, page_url=detail_url)
"""

import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, NamedTuple, Optional, Tuple
from urllib.parse import urljoin, urlsplit

from harvest.config import AD_HOSTS, BOT_HINTS, PRIMARY_HOST, SECONDARY_WRAPPER_HOST

DISQUALIFIED = -99999
AD_SCORE = -5000
BOT_SCORE = -4000
MIN_ACCEPTABLE = -1000

_STATIC_ASSET_RE = re.compile(
    r"\.(css|js|png|jpg|jpeg|gif|svg|webp|avif|woff|woff2|ttf|eot|ico|json|map|zip|rar|7z|gz|tar)(\?.*)?$"
)
TRACKING_MARKERS = (
    "cloudflareinsights.com",
    "beacon.min.js",
    "cf-beacon",
    "wp-content/uploads/",
    "/assets/css/",
    "/wp-content/themes/",
    "/wp-includes/",
)
AD_MARKERS = ("googleads", "doubleclick")

_PLAYER_RE = re.compile(r"/playerv2\.php(\?|$)", re.IGNORECASE)
_WRAPPER_RE = re.compile(r"/hard/.+\.html\?match=\d+", re.IGNORECASE)

# Substrings that, when present, mean a URL may be a real player
GOOD_HINTS = ("m3u8", "embed", "player", "iframe", "albaplayer", "kora-live")


class HostBlocklist:
    """Immutable set of ad/tracking hosts; a host matches itself and its subdomains."""

    def __init__(self, hosts: Iterable[str] = AD_HOSTS):
        self._hosts = frozenset(h.strip().lower().lstrip(".") for h in hosts if h and h.strip())

    @property
    def hosts(self) -> frozenset:
        return self._hosts

    def __len__(self):
        return len(self._hosts)

    def __contains__(self, host) -> bool:
        return self.blocks_host(host)

    def blocks_host(self, host: Optional[str]) -> bool:
        if not host:
            return False
        host = host.lower()
        if host in self._hosts:
            return True
        parts = host.split(".")
        return any(".".join(parts[i:]) in self._hosts for i in range(1, len(parts) - 1))

    def blocks(self, url: Optional[str]) -> bool:
        try:
            return self.blocks_host(urlsplit(str(url or "")).hostname)
        except ValueError:
            return False

    def union(self, hosts: Iterable[str]) -> "HostBlocklist":
        return HostBlocklist(list(self._hosts) + list(hosts))


_STATIC_BLOCKLIST = HostBlocklist()


# =============================================================================
# URL shape helpers
# =============================================================================

def normalize_url(raw, base_url: Optional[str] = None) -> Optional[str]:
    """Absolute http(s) URL or None (javascript:, data:, unparseable)."""
    if not raw:
        return None
    u = str(raw).strip()
    if not u or re.match(r"^(javascript:|data:|about:|blob:)", u, re.IGNORECASE):
        return None
    if u.startswith("//"):
        u = "https:" + u
    if not re.match(r"^https?://", u, re.IGNORECASE):
        if not base_url:
            return None
        try:
            u = urljoin(base_url, u)
        except ValueError:
            return None
    return u if re.match(r"^https?://", u, re.IGNORECASE) else None


def is_junk_url(url: Optional[str]) -> bool:
    if not url:
        return True
    u = str(url).lower()
    return bool(_STATIC_ASSET_RE.search(u)) or any(m in u for m in TRACKING_MARKERS)


def is_player_url(url: Optional[str]) -> bool:
    return bool(url) and bool(_PLAYER_RE.search(str(url)))


def is_wrapper_url(url: Optional[str]) -> bool:
    return bool(url) and bool(_WRAPPER_RE.search(str(url)))


def is_weak_stream_url(url: Optional[str]) -> bool:
    """
    True when a stored stream URL cannot structurally be a real stream:
    empty, a listing-site self link, an ad host, or a secondary wrapper page.
    """
    if not url:
        return True
    s = str(url).lower()
    if PRIMARY_HOST in s and "match" in s:
        return True
    if _STATIC_BLOCKLIST.blocks(s):
        return True
    if "/hard/" in s and SECONDARY_WRAPPER_HOST in s:
        return True
    if is_player_url(s):
        return False
    return not any(h in s for h in GOOD_HINTS)


# =============================================================================
# Rule table
# =============================================================================

class Rule(NamedTuple):
    name: str
    predicate: Callable[[str, Optional[str]], bool]
    weight: int
    terminal: bool = False


@dataclass(frozen=True)
class Vocabulary:
    """Source-specific markers: (substring, weight) and (all-substrings, penalty)."""
    name: str
    markers: Tuple[Tuple[str, int], ...]
    penalties: Tuple[Tuple[Tuple[str, ...], int], ...] = ()


GENERIC_MARKERS = (
    ("m3u8", 300),
    ("embed", 80),
    ("player", 60),
    ("iframe", 40),
    ("live", 20),
)

PRIMARY_VOCABULARY = Vocabulary(
    name="primary",
    markers=(("playerv2.php", 1200), ("albaplayer", 250), ("kora-live", 200)) + GENERIC_MARKERS,
    penalties=(
        ((PRIMARY_HOST, "match"), -120),
        ((SECONDARY_WRAPPER_HOST, "/hard/", "match="), -1200),
        (("sir-tv.tv/wp-content/uploads/",), -500),
    ),
)

SECONDARY_VOCABULARY = Vocabulary(
    name="secondary",
    markers=(("playerv2.php", 1200),) + GENERIC_MARKERS,
    penalties=(
        ((SECONDARY_WRAPPER_HOST, "/hard/", "match="), -1200),
        ((PRIMARY_HOST, "match"), -120),
    ),
)


def _contains_all(needles):
    return lambda url, page_url: all(n in url for n in needles)


def _same_as_page(url, page_url):
    return bool(page_url) and url == page_url.lower()


def build_rules(vocabulary: Vocabulary, blocklist: Optional[HostBlocklist] = None) -> Tuple[Rule, ...]:
    blocklist = blocklist or HostBlocklist()
    rules: List[Rule] = [
        Rule("not-http", lambda u, p: not re.match(r"^https?://", u), DISQUALIFIED, True),
        Rule("static-or-tracking", lambda u, p: is_junk_url(u), DISQUALIFIED, True),
        Rule("self", _same_as_page, DISQUALIFIED, True),
        Rule("ad-host", lambda u, p: blocklist.blocks(u) or any(m in u for m in AD_MARKERS), AD_SCORE, True),
        Rule("bot-wall", lambda u, p: any(h in u for h in BOT_HINTS), BOT_SCORE, True),
    ]
    for marker, weight in vocabulary.markers:
        rules.append(Rule(f"marker:{marker}", _contains_all((marker,)), weight))
    for needles, weight in vocabulary.penalties:
        rules.append(Rule(f"penalty:{'+'.join(needles)}", _contains_all(needles), weight))
    return tuple(rules)


def score_candidate(url: Optional[str], rules: Tuple[Rule, ...], page_url: Optional[str] = None) -> int:
    if not url:
        return DISQUALIFIED
    s = str(url).strip().lower()
    score = 0
    for rule in rules:
        if rule.predicate(s, page_url):
            if rule.terminal:
                return rule.weight
            score += rule.weight
    return score


def is_rejected(url: Optional[str], rules: Tuple[Rule, ...], page_url: Optional[str] = None) -> bool:
    """True when any terminal rule (junk, self, ad host, bot wall) fires."""
    if not url:
        return True
    s = str(url).strip().lower()
    return any(rule.terminal and rule.predicate(s, page_url) for rule in rules)


def pick_best_url(
    urls: Iterable[Optional[str]],
    rules: Tuple[Rule, ...],
    page_url: Optional[str] = None,
    threshold: int = MIN_ACCEPTABLE,
) -> Optional[str]:
    """Highest scoring URL above ``threshold``; ties go to the first one seen."""
    best, best_score = None, None
    seen = set()
    for url in urls:
        if not url or url in seen:
            continue
        seen.add(url)
        score = score_candidate(url, rules, page_url)
        if best_score is None or score > best_score:
            best, best_score = url, score
    if best is not None and best_score > threshold:
        return best
    return None

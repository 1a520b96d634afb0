"""
Text and time normalization helpers.

Pure functions only: localized digits, free-form status text, score cells,
team-name canonicalization (for the durable match key) and the handful of
source-local calendar/time conversions the pipeline needs.
"""

import re
import unicodedata
from datetime import date, datetime, timedelta, tzinfo
from typing import List, Optional

# Arabic-Indic and Extended (Persian) digits
_DIGIT_MAP = {ord(ch): str(i) for i, ch in enumerate("٠١٢٣٤٥٦٧٨٩")}
_DIGIT_MAP.update({ord(ch): str(i) for i, ch in enumerate("۰۱۲۳۴۵۶۷۸۹")})
_TO_ARABIC_INDIC = {ord(str(i)): ch for i, ch in enumerate("٠١٢٣٤٥٦٧٨٩")}

MAX_GOALS = 30
_SCORE_RE = re.compile(r"^[0-9]{1,2}$")
_SCORE_PAIR_RE = re.compile(r"([0-9]{1,2})\s*[-:]\s*([0-9]{1,2})")

STATUS_UPCOMING = "upcoming"
STATUS_LIVE = "live"
STATUS_FINISHED = "finished"
STATUS_UNKNOWN = "unknown"
STATUSES = (STATUS_UPCOMING, STATUS_LIVE, STATUS_FINISHED, STATUS_UNKNOWN)

_DAY_OFFSETS = {"yesterday": -1, "today": 0, "tomorrow": 1}

# Tashkeel, superscript alef, tatweel
_ARABIC_MARKS_RE = re.compile(r"[\u064B-\u0652\u0670\u0640]")
_LETTER_VARIANTS = str.maketrans({
    "إ": "ا",
    "أ": "ا",
    "آ": "ا",
    "ى": "ي",
    "ة": "ه",
    "ؤ": "و",
    "ئ": "ي",
})
_NON_WORD_RE = re.compile(r"[\W_]+")


def normalize_digits(value) -> str:
    if value is None:
        return ""
    return str(value).translate(_DIGIT_MAP)


def to_arabic_indic(value: str) -> str:
    return value.translate(_TO_ARABIC_INDIC)


# =============================================================================
# Scores
# =============================================================================

def parse_score(raw) -> Optional[int]:
    """
    Parse one score cell.

    Accepts 1-2 ASCII digits after localized-digit normalization, in 0..30.
    Anything else is None, never an exception.
    """
    if raw is None:
        return None
    s = normalize_digits(raw).strip()
    if not _SCORE_RE.match(s):
        return None
    n = int(s)
    if n < 0 or n > MAX_GOALS:
        return None
    return n


def parse_score_pair(text) -> Optional[tuple]:
    """Find a ``home-away`` (or ``home:away``) pair inside free text."""
    if not text:
        return None
    m = _SCORE_PAIR_RE.search(normalize_digits(text))
    if not m:
        return None
    home, away = parse_score(m.group(1)), parse_score(m.group(2))
    if home is None or away is None:
        return None
    return home, away


# =============================================================================
# Status text
# =============================================================================

_UPCOMING_AR_VERBS = ("تبدأ", "تبدا", "يبدأ", "يبدا")
_LIVE_AR = ("جارية", "مباشر", "الآن")
_FINISHED_AR = ("انتهت", "انتهى", "نهاية")

_UPCOMING_RE = re.compile(r"not started|upcoming|scheduled", re.IGNORECASE)
_LIVE_RE = re.compile(r"\blive\b|in progress|\bnow\b", re.IGNORECASE)
_FINISHED_RE = re.compile(r"\bft\b|full ?time|\bfinished\b|\bended\b|\bfinal\b", re.IGNORECASE)


def status_from_text(text) -> str:
    """Map a free-text status label (Arabic or English) to a canonical status."""
    s = normalize_digits(text).strip()
    if not s:
        return STATUS_UNKNOWN

    if "لم" in s and any(v in s for v in _UPCOMING_AR_VERBS):
        return STATUS_UPCOMING
    if _UPCOMING_RE.search(s):
        return STATUS_UPCOMING
    if any(k in s for k in _LIVE_AR):
        return STATUS_LIVE
    if any(k in s for k in _FINISHED_AR):
        return STATUS_FINISHED
    if _LIVE_RE.search(s):
        return STATUS_LIVE
    if _FINISHED_RE.search(s):
        return STATUS_FINISHED
    return STATUS_UNKNOWN


def status_from_classes(class_names) -> Optional[str]:
    """Status hint from a card's markup classes (list or space separated string)."""
    if not class_names:
        return None
    if isinstance(class_names, (list, tuple)):
        class_names = " ".join(class_names)
    cls = str(class_names).lower()
    if "not-started" in cls:
        return STATUS_UPCOMING
    if "live" in cls:
        return STATUS_LIVE
    if "finished" in cls or "ended" in cls:
        return STATUS_FINISHED
    return None


# =============================================================================
# Identity
# =============================================================================

def canon_team_name(value) -> str:
    s = normalize_digits(value).strip()
    s = _ARABIC_MARKS_RE.sub("", s)
    s = s.translate(_LETTER_VARIANTS)
    # Latin diacritics and compatibility forms (é -> e, ﬁ -> fi)
    s = unicodedata.normalize("NFKD", s)
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = s.translate(_LETTER_VARIANTS)
    s = _NON_WORD_RE.sub("", s)
    return s.casefold()


def match_key(match_day, home_team, away_team) -> str:
    """Order-independent durable identity: ``<day>||<teamA>__<teamB>``."""
    day = str(match_day or "").strip().lower()
    pair = sorted([canon_team_name(home_team), canon_team_name(away_team)])
    return f"{day}||{'__'.join(pair)}"


# =============================================================================
# Calendar / time
# =============================================================================

def parse_start(raw, tz: tzinfo) -> Optional[datetime]:
    """
    Parse a ``data-start`` style attribute into an aware datetime.

    ``2025-01-10 20:00`` and ``2025-01-10T20:00:00+02:00`` are both accepted;
    naive values are read in the source timezone.
    """
    if raw is None:
        return None
    s = normalize_digits(raw).strip()
    if not s:
        return None
    if "T" not in s:
        s = s.replace(" ", "T", 1)
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt


def parse_instant(value) -> Optional[datetime]:
    """Read a persisted ``match_start`` (datetime or ISO string); None if unusable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else None
    s = str(value).strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s.replace(" ", "T", 1))
    except ValueError:
        return None
    return dt if dt.tzinfo else None


def local_day(dt: Optional[datetime], tz: tzinfo) -> Optional[str]:
    if dt is None:
        return None
    return dt.astimezone(tz).date().isoformat()


def day_for_key(day_key: str, now: datetime, tz: tzinfo) -> str:
    today: date = now.astimezone(tz).date()
    return (today + timedelta(days=_DAY_OFFSETS[day_key])).isoformat()


def rolling_days(now: datetime, tz: tzinfo) -> List[str]:
    return [day_for_key(k, now, tz) for k in ("yesterday", "today", "tomorrow")]


def display_time(dt: Optional[datetime], tz: tzinfo) -> Optional[str]:
    """12-hour Arabic clock label, e.g. ``٠٨:٠٠ م``."""
    if dt is None:
        return None
    local = dt.astimezone(tz)
    suffix = "ص" if local.hour < 12 else "م"
    return to_arabic_indic(f"{local.strftime('%I:%M')} {suffix}")

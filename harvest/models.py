from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional, Tuple

from harvest.textnorm import STATUS_UNKNOWN, match_key as key_of, parse_instant

ScorePair = Tuple[int, int]

STREAM_SLOTS = ("stream_url", "stream_url_2", "stream_url_3", "stream_url_4", "stream_url_5")

ROW_COLUMNS = (
    "match_key",
    "home_team",
    "away_team",
    "home_logo",
    "away_logo",
) + STREAM_SLOTS + (
    "match_day",
    "match_start",
    "match_time",
    "home_score",
    "away_score",
    "status_key",
)


@dataclass(frozen=True)
class MatchSummary:
    """One match card read from a listing day-tab."""
    day_key: str
    home_team: str
    away_team: str
    detail_url: str
    home_logo: str = ""
    away_logo: str = ""
    data_start: Optional[str] = None
    time_text: Optional[str] = None
    status_text: Optional[str] = None
    status_hint: Optional[str] = None  # from markup classes
    score: Optional[ScorePair] = None
    result_visibility: str = "missing"  # visible | hidden | missing


@dataclass(frozen=True)
class PrimaryResolution:
    stream_url: Optional[str] = None
    status_text: Optional[str] = None
    status_hint: Optional[str] = None
    score: Optional[ScorePair] = None
    candidates: Tuple[str, ...] = ()

    @classmethod
    def degraded(cls) -> "PrimaryResolution":
        return cls()


@dataclass(frozen=True)
class ResolvedMatch:
    summary: MatchSummary
    resolution: PrimaryResolution = field(default_factory=PrimaryResolution)


@dataclass(frozen=True)
class SecondaryListing:
    """A card from the secondary provider; identity is (day, teams)."""
    day_key: str
    match_day: str
    home_team: str
    away_team: str
    page_url: str
    data_start: Optional[str] = None


@dataclass(frozen=True)
class SecondaryStream:
    match_key: str
    stream_url: Optional[str]


@dataclass(frozen=True)
class MatchRecord:
    """The persisted unit. One row of the match table."""
    match_key: str
    home_team: str
    away_team: str
    match_day: str
    home_logo: str = ""
    away_logo: str = ""
    stream_url: Optional[str] = None
    stream_url_2: Optional[str] = None
    stream_url_3: Optional[str] = None
    stream_url_4: Optional[str] = None
    stream_url_5: Optional[str] = None
    match_start: Optional[datetime] = None
    match_time: str = "—"
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    status_key: str = STATUS_UNKNOWN

    @property
    def has_score(self) -> bool:
        return self.home_score is not None or self.away_score is not None

    def to_row(self) -> dict:
        row = asdict(self)
        row["match_start"] = self.match_start.isoformat() if self.match_start else None
        return row

    @classmethod
    def from_row(cls, row: dict) -> "MatchRecord":
        def _int_or_none(v):
            return v if isinstance(v, int) and not isinstance(v, bool) else None

        day = row.get("match_day")
        day = day.isoformat() if hasattr(day, "isoformat") else str(day or "")
        return cls(
            match_key=str(row.get("match_key") or "") or key_of(day, row.get("home_team"), row.get("away_team")),
            home_team=row.get("home_team") or "",
            away_team=row.get("away_team") or "",
            match_day=day,
            home_logo=row.get("home_logo") or "",
            away_logo=row.get("away_logo") or "",
            stream_url=row.get("stream_url"),
            stream_url_2=row.get("stream_url_2"),
            stream_url_3=row.get("stream_url_3"),
            stream_url_4=row.get("stream_url_4"),
            stream_url_5=row.get("stream_url_5"),
            match_start=parse_instant(row.get("match_start")),
            match_time=row.get("match_time") or "—",
            home_score=_int_or_none(row.get("home_score")),
            away_score=_int_or_none(row.get("away_score")),
            status_key=row.get("status_key") or STATUS_UNKNOWN,
        )

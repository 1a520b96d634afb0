"""
Runtime configuration for the match stream harvester.

Everything a run needs is carried by an explicit ``Settings`` object built
once per process (``Settings.from_env``) and passed down to the pipeline,
the workers and the store. Nothing here is mutated after construction.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo

# =============================================================================
# Sources
# =============================================================================

DAY_KEYS = ("yesterday", "today", "tomorrow")

# Primary provider: listing per day-tab, one detail page per match card
PRIMARY_DAY_URLS = {
    "yesterday": "https://www.bein-live.com/matches-yesterday/",
    "today": "https://www.bein-live.com/matches-today_1/",
    "tomorrow": "https://www.bein-live.com/matches-tomorrow/",
}
PRIMARY_HOST = "bein-live.com"

# Secondary provider (server 2)
SECONDARY_DAY_URLS = {
    "yesterday": "https://w4.siiir.tv/yesterday-matches/",
    "today": "https://w4.siiir.tv/today-matches/",
    "tomorrow": "https://w4.siiir.tv/tomorrow-matches/",
}
SECONDARY_WRAPPER_HOST = "aleynoxitram.sbs"

# =============================================================================
# Anti-ads / anti-bot vocabularies
# =============================================================================

AD_HOSTS = (
    "doubleclick.net",
    "googlesyndication.com",
    "googleadservices.com",
    "googletagservices.com",
    "adservice.google.com",
    "adsystem.com",
    "taboola.com",
    "outbrain.com",
    "mgid.com",
    "propellerads.com",
    "popads.net",
    "onclickalgo.com",
    "pushwelcome.com",
    "pushpushgo.com",
    "hilltopads.net",
    "identitylumber.com",
)

BOT_HINTS = (
    "captcha",
    "recaptcha",
    "turnstile",
    "cloudflare",
    "challenge",
    "verify",
    "verification",
    "not-a-robot",
    "not a robot",
    "robot",
)

# =============================================================================
# Browser profile
# =============================================================================

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
)
ACCEPT_LANGUAGE = "ar-EG,ar;q=0.9,en-US;q=0.8,en;q=0.7"
LOCALE = "ar-EG"
VIEWPORT = {"width": 1280, "height": 720}
LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-dev-shm-usage",
]

# Listing pages
CARD_SELECTOR = ".AY_Match"
LISTING_READY_SELECTOR = ".AY_Match, .no-data__msg, body"


def _env_int(environ: Mapping[str, str], name: str, default: int, minimum: Optional[int] = None) -> int:
    raw = environ.get(name)
    try:
        value = int(str(raw).strip()) if raw not in (None, "") else default
    except ValueError:
        value = default
    if minimum is not None and value < minimum:
        value = default
    return value


def _env_flag(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    return str(raw).strip() not in ("0", "false", "False", "no")


@dataclass(frozen=True)
class Settings:
    db_dsn: str = ""
    table_name: str = "match-stream-app"
    rpc_name: str = "refresh_match_stream_app"
    headless: bool = True
    debug: bool = False
    diag: bool = False
    diag_dir: str = "diag"
    concurrency: int = 2
    list_timeout_ms: int = 60000
    deep_timeout_ms: int = 45000
    source_tz: str = "Africa/Cairo"
    blocklist_url: str = ""
    port: int = 8080
    run_interval_s: int = 600
    primary_day_urls: Dict[str, str] = field(default_factory=lambda: dict(PRIMARY_DAY_URLS))
    secondary_day_urls: Dict[str, str] = field(default_factory=lambda: dict(SECONDARY_DAY_URLS))

    def __post_init__(self):
        # Fails fast on a bad zone name
        ZoneInfo(self.source_tz)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.source_tz)

    def primary_days(self) -> Tuple[Tuple[str, str], ...]:
        return tuple((key, self.primary_day_urls[key]) for key in DAY_KEYS if key in self.primary_day_urls)

    def secondary_days(self) -> Tuple[Tuple[str, str], ...]:
        return tuple((key, self.secondary_day_urls[key]) for key in DAY_KEYS if key in self.secondary_day_urls)

    def context_options(self) -> dict:
        """Keyword arguments for ``browser.new_context`` (one isolated session)."""
        return {
            "locale": LOCALE,
            "timezone_id": self.source_tz,
            "service_workers": "block",
            "extra_http_headers": {"Accept-Language": ACCEPT_LANGUAGE},
            "user_agent": USER_AGENT,
            "viewport": dict(VIEWPORT),
        }

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            db_dsn=env.get("DB_CONNECTION_STRING", "").strip().strip("'").strip('"'),
            table_name=env.get("TABLE_NAME") or "match-stream-app",
            rpc_name=env.get("RPC_NAME") or "refresh_match_stream_app",
            headless=_env_flag(env, "HEADLESS", True),
            debug=env.get("DEBUG", "0") == "1",
            diag=env.get("DIAG", "0") == "1",
            diag_dir=env.get("DIAG_DIR") or "diag",
            concurrency=_env_int(env, "CONCURRENCY", 2, minimum=1),
            list_timeout_ms=_env_int(env, "LIST_TIMEOUT_MS", 60000, minimum=1),
            deep_timeout_ms=_env_int(env, "DEEP_TIMEOUT_MS", 45000, minimum=1),
            source_tz=env.get("SOURCE_TZ") or "Africa/Cairo",
            blocklist_url=env.get("BLOCKLIST_URL", "").strip(),
            port=_env_int(env, "PORT", 8080, minimum=1),
            run_interval_s=_env_int(env, "RUN_INTERVAL", 600, minimum=1),
        )

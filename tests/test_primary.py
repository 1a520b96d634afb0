import asyncio

from fakes import FakePage, Site

from harvest.diagnostics import Diagnostics
from harvest.primary import collect_dom_candidates, extract_detail_meta, resolve_primary
from harvest.scoring import PRIMARY_VOCABULARY, build_rules

DETAIL = "https://www.bein-live.com/match/ahly-zamalek/"
RULES = build_rules(PRIMARY_VOCABULARY)

DETAIL_HTML = """
<html><head><title>مباشر الأهلي والزمالك</title></head><body>
  <div class="AY_Match live">
    <div class="MT_Result"><span class="RS-goals">1</span><span class="RS-goals">0</span></div>
    <div class="MT_Stat">جارية الان</div>
  </div>
  <div class="video-serv">
    <a href="https://albaplayer.example/embed/ch1">سيرفر 1</a>
    <a href="javascript:void(0)">سيرفر 2</a>
  </div>
  <iframe src="//kora-live.example/frame/1"></iframe>
  <iframe data-src="/local/frame"></iframe>
  <video><source src="https://cdn.example.com/hls/live.m3u8"></video>
</body></html>
"""


def test_extract_detail_meta() -> None:
    status_text, hint, score = extract_detail_meta(DETAIL_HTML)
    assert status_text == "جارية الان"
    assert hint == "live"
    assert score == (1, 0)


def test_extract_detail_meta_ignores_page_title() -> None:
    status_text, hint, score = extract_detail_meta("<html><head><title>مباشر</title></head><body></body></html>")
    assert (status_text, hint, score) == (None, None, None)


def test_extract_detail_meta_reads_only_the_pages_own_card() -> None:
    html = """
    <div class="AY_Match"><div class="TM_Name">own</div></div>
    <aside>
      <div class="AY_Match live">
        <div class="MT_Stat">جارية</div>
        <span class="RS-goals">3</span><span class="RS-goals">2</span>
      </div>
    </aside>
    """
    assert extract_detail_meta(html) == (None, None, None)


def test_extract_detail_meta_without_card_reads_the_page() -> None:
    html = '<div class="MT_Stat finished">انتهت</div><span class="RS-score">2-2</span>'
    assert extract_detail_meta(html) == ("انتهت", "finished", (2, 2))


def test_collect_dom_candidates() -> None:
    urls = collect_dom_candidates(DETAIL_HTML, DETAIL)
    assert urls == [
        "https://albaplayer.example/embed/ch1",
        "https://kora-live.example/frame/1",
        "https://www.bein-live.com/local/frame",
        "https://cdn.example.com/hls/live.m3u8",
    ]


def test_resolve_primary_picks_best_candidate() -> None:
    site = Site(
        html=DETAIL_HTML,
        requests=(
            "https://ads.doubleclick.net/pixel",
            "https://p.example.tv/playerv2.php?match=match9&key=zz",
            "https://www.bein-live.com/wp-includes/js/jquery.js",
        ),
        frames=("https://kora-live.example/frame/1",),
    )
    page = FakePage({DETAIL: site})
    res = asyncio.run(resolve_primary(page, DETAIL, RULES, Diagnostics(enabled=False)))

    assert res.stream_url == "https://p.example.tv/playerv2.php?match=match9&key=zz"
    assert res.status_hint == "live"
    assert res.status_text == "جارية الان"
    assert res.score == (1, 0)
    assert "https://albaplayer.example/embed/ch1" in res.candidates
    assert "https://ads.doubleclick.net/pixel" in res.candidates
    # collector unhooked itself
    assert page.listeners["request"] == []
    assert page.context.listeners["page"] == []


def test_resolve_primary_degrades_on_navigation_failure() -> None:
    page = FakePage({})
    res = asyncio.run(resolve_primary(page, DETAIL, RULES, Diagnostics(enabled=False)))
    assert res.stream_url is None
    assert res.status_text is None
    assert res.status_hint is None
    assert res.score is None
    assert page.listeners["request"] == []

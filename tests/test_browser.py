import asyncio
from unittest import mock

import requests
from fakes import FakePage, FakeRequest

from harvest.browser import CandidateCollector, load_blocklist

HOSTS_FILE = """
# comment line
0.0.0.0 ads.badhost.com
127.0.0.1 tracker.example.net  # inline comment
popunder.io
0.0.0.0 localhost
"""


def test_load_blocklist_parses_hosts_file() -> None:
    resp = mock.Mock(text=HOSTS_FILE)
    resp.raise_for_status.return_value = None
    with mock.patch("harvest.browser.requests.get", return_value=resp) as get:
        blocklist = load_blocklist("https://lists.example/hosts", timeout=5)

    get.assert_called_once_with("https://lists.example/hosts", timeout=5)
    assert blocklist.blocks("https://ads.badhost.com/x")
    assert blocklist.blocks("https://cdn.tracker.example.net/p")
    assert blocklist.blocks("https://popunder.io/")
    assert blocklist.blocks("https://doubleclick.net/")
    assert not blocklist.blocks("http://localhost/")


def test_blocklist_download_failure_keeps_static_list() -> None:
    with mock.patch("harvest.browser.requests.get", side_effect=requests.ConnectionError("offline")):
        blocklist = load_blocklist("https://lists.example/hosts")
    assert blocklist.blocks("https://doubleclick.net/")
    assert not blocklist.blocks("https://ads.badhost.com/")


def test_no_url_means_no_download() -> None:
    with mock.patch("harvest.browser.requests.get") as get:
        load_blocklist("")
    get.assert_not_called()


def test_candidate_collector_scope() -> None:
    page = FakePage({})

    async def scenario():
        async with CandidateCollector(page) as collector:
            page.emit("request", FakeRequest("https://a/1"))
            page.emit("request", FakeRequest("https://a/1"))
            collector.add(None)
            collector.extend(["https://b/2", "https://a/1"])
        page.emit("request", FakeRequest("https://late/3"))
        return collector

    collector = asyncio.run(scenario())
    assert collector.urls == ["https://a/1", "https://b/2"]
    assert page.listeners["popup"] == []

import json
from pathlib import Path

import httpx
import pytest

from invite_crawler.errors import ResolveError, SearchError, VerifyError
from invite_crawler.services.crawl.base import extract_invite_links, invite_code, normalize_invite_link
from invite_crawler.services.crawl.spiders.discord_invite import DiscordInviteVerifier
from invite_crawler.services.crawl.spiders.google_search import GoogleSearchSource
from invite_crawler.services.crawl.spiders.intermediary import IntermediaryResolver


def read_fixture(name: str) -> str:
    p = Path(__file__).parent / "fixtures" / name
    return p.read_text(encoding="utf-8")


def mock_client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler), follow_redirects=True)


def test_invite_link_helpers():
    assert invite_code("https://discord.gg/abc") == "abc"
    assert invite_code("discordapp.com/invite/Xy-9") == "Xy-9"
    assert invite_code("https://example.com/abc") is None
    assert normalize_invite_link("http://www.discord.com/invite/abc") == "https://discord.gg/abc"
    assert extract_invite_links("see discord.gg/one and https://discord.gg/two, discord.gg/one") == [
        "https://discord.gg/one",
        "https://discord.gg/two",
    ]


def test_google_parse_html_keeps_result_urls_only():
    urls = GoogleSearchSource.parse_html(read_fixture("google_results.html"))
    assert urls == [
        "https://disboard.org/servers/tag/gaming",
        "https://top.gg/servers/list/top",
        "https://discord.gg/python",
    ]


def test_google_search_pages_map_to_result_offsets():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(dict(request.url.params))
        return httpx.Response(200, text=read_fixture("google_results.html"))

    source = GoogleSearchSource(client=mock_client(handler))
    assert len(source.search(2)) == 3
    assert seen[0]["start"] == "20"
    assert "discord.gg" in seen[0]["q"]


def test_google_search_http_error_is_search_error():
    source = GoogleSearchSource(client=mock_client(lambda r: httpx.Response(429)))
    with pytest.raises(SearchError):
        source.search(0)


def test_google_parse_html_drops_urls_with_control_characters():
    html = '<a href="/url?q=http://bad.example/a%0Ab&amp;sa=U">bad</a><a href="/url?q=https://ok.example/x&amp;sa=U">ok</a>'
    assert GoogleSearchSource.parse_html(html) == ["https://ok.example/x"]


def test_intermediary_parse_html():
    links = IntermediaryResolver.parse_html(read_fixture("intermediary_page.html"))
    assert links == [
        "https://discord.gg/abcDEF",
        "https://discord.gg/xyz123",
        "https://discord.gg/Gamma99",
        "https://discord.gg/hidden1",
    ]


def test_intermediary_returns_direct_invites_without_request():
    def handler(request):
        raise AssertionError("no request expected")

    resolver = IntermediaryResolver(client=mock_client(handler))
    assert resolver.resolve("https://discord.com/invite/abc") == ["https://discord.gg/abc"]


def test_intermediary_follows_redirect_onto_invite():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "short.example":
            return httpx.Response(302, headers={"Location": "https://discord.gg/landed"})
        return httpx.Response(200, text="<html>invite page</html>")

    resolver = IntermediaryResolver(client=mock_client(handler))
    assert resolver.resolve("https://short.example/x") == ["https://discord.gg/landed"]


def test_intermediary_failure_is_resolve_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    resolver = IntermediaryResolver(client=mock_client(handler))
    with pytest.raises(ResolveError):
        resolver.resolve("https://down.example")


def test_discord_verifier_parses_invite():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url)
        return httpx.Response(200, json=json.loads(read_fixture("discord_invite.json")))

    verifier = DiscordInviteVerifier(client=mock_client(handler))
    invite = verifier.fetch("https://discord.gg/python")
    assert invite.code == "python"
    assert invite.guild.name == "Python"
    assert invite.approximate_member_count == 402015
    assert seen[0].path == "/api/v10/invites/python"
    assert seen[0].params["with_counts"] == "true"


def test_discord_verifier_unknown_invite():
    body = {"message": "Unknown Invite", "code": 10006}
    verifier = DiscordInviteVerifier(client=mock_client(lambda r: httpx.Response(404, json=body)))
    with pytest.raises(VerifyError):
        verifier.fetch("https://discord.gg/gone")


def test_discord_verifier_rejects_bad_link_and_bad_body():
    verifier = DiscordInviteVerifier(client=mock_client(lambda r: httpx.Response(200, text="not json")))
    with pytest.raises(VerifyError):
        verifier.fetch("https://example.com/nope")
    with pytest.raises(VerifyError):
        verifier.fetch("https://discord.gg/abc")


def test_intermediary_unparseable_url_is_resolve_error():
    def handler(request):
        raise AssertionError("no request expected")

    resolver = IntermediaryResolver(client=mock_client(handler))
    with pytest.raises(ResolveError):
        resolver.resolve("http://bad.example/a\nb")

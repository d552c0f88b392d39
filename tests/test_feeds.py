from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
import requests

from conftest import EMPTY_LINK_RSS_XML, rss_document
from rss_to_note import feeds
from rss_to_note.feeds import FetchError, ParseError, fetch_feed, parse_feed


def test_parse_feed_reads_rss_items(sample_rss_xml):
    parsed = parse_feed(sample_rss_xml)

    assert parsed.title == "Test Feed"
    assert parsed.last_build_date == "Tue, 02 Jan 2024 12:00:00 GMT"
    assert [item.link for item in parsed.items] == [
        "https://example.com/article-1",
        "https://example.com/article-2",
    ]

    first = parsed.items[0]
    assert first.title == "First Article"
    assert first.author == "Jane Doe"
    assert first.pub_date == "Tue, 02 Jan 2024 10:00:00 GMT"
    assert first.published_at == datetime(2024, 1, 2, 10, 0, tzinfo=timezone.utc)
    assert first.content == "Description of the first article"


def test_parse_feed_uses_creator_and_encoded_content(sample_rss_xml):
    second = parse_feed(sample_rss_xml).items[1]

    assert second.author == "John Roe"
    assert "<b>body</b>" in second.content


def test_parse_feed_reads_atom_entries(sample_atom_xml):
    parsed = parse_feed(sample_atom_xml)

    assert parsed.title == "Test Atom Feed"
    assert parsed.last_build_date == "2024-02-13T10:00:00Z"
    assert len(parsed.items) == 1
    entry = parsed.items[0]
    assert entry.link == "https://example.com/entry-1"
    assert entry.author == "Atom Author"
    assert entry.pub_date == "2024-02-13T10:00:00Z"
    assert entry.content == "Summary of entry 1"


def test_parse_feed_defaults_missing_fields():
    before = datetime.now(timezone.utc) - timedelta(seconds=1)
    parsed = parse_feed(rss_document([{"link": "https://example.com/bare"}]))

    item = parsed.items[0]
    assert item.title == "Untitled"
    assert item.author == "Unknown"
    assert item.content == ""
    assert item.published_at >= before
    assert datetime.fromisoformat(item.pub_date) == item.published_at


def test_parse_feed_prefers_description_over_encoded_content():
    document = """<?xml version="1.0"?>
    <rss version="2.0" xmlns:content="http://purl.org/rss/1.0/modules/content/">
      <channel><title>T</title>
        <item>
          <link>https://example.com/a</link>
          <description>Short</description>
          <content:encoded><![CDATA[<p>Long</p>]]></content:encoded>
        </item>
      </channel>
    </rss>"""

    assert parse_feed(document).items[0].content == "Short"


def test_parse_feed_keeps_items_without_links_for_the_filter():
    parsed = parse_feed(EMPTY_LINK_RSS_XML)

    assert [item.link for item in parsed.items] == [None, "https://example.com/has-link"]


def test_parse_feed_strips_markup_from_html_titles():
    document = """<?xml version="1.0"?>
    <feed xmlns="http://www.w3.org/2005/Atom"><title>T</title>
      <entry>
        <title type="html">&lt;b&gt;Bold&lt;/b&gt; news</title>
        <link href="https://example.com/b"/>
        <id>b</id>
      </entry>
    </feed>"""

    assert parse_feed(document).items[0].title == "Bold news"


def test_parse_feed_rejects_malformed_documents(sample_malformed_xml):
    with pytest.raises(ParseError):
        parse_feed(sample_malformed_xml)


def test_parse_feed_rejects_empty_documents():
    with pytest.raises(ParseError):
        parse_feed("")


def test_first_value_returns_first_non_empty():
    entry = {"summary": "", "content": [{"value": "  "}, {"value": "Body"}]}

    assert feeds.first_value(entry, feeds.CONTENT_EXTRACTORS) == "Body"
    assert feeds.first_value({}, feeds.CONTENT_EXTRACTORS) is None


def test_fetch_feed_returns_response(monkeypatch):
    captured = {}

    def fake_get(url, timeout=None, headers=None):
        captured.update(url=url, timeout=timeout, headers=headers)
        return SimpleNamespace(
            status_code=200,
            text="<rss/>",
            content=b"<rss/>",
            raise_for_status=lambda: None,
        )

    monkeypatch.setattr(feeds.requests, "get", fake_get)

    response = fetch_feed("https://example.com/feed.xml")

    assert response.status == 200
    assert response.text == "<rss/>"
    assert captured["url"] == "https://example.com/feed.xml"
    assert captured["timeout"] == feeds.DEFAULT_TIMEOUT
    assert "User-Agent" in captured["headers"]


def test_fetch_feed_wraps_request_errors(monkeypatch):
    def fake_get(url, timeout=None, headers=None):
        raise requests.ConnectionError("Timeout")

    monkeypatch.setattr(feeds.requests, "get", fake_get)

    with pytest.raises(FetchError, match="Timeout"):
        fetch_feed("https://timeout.example.com")


def test_fetch_feed_wraps_http_errors(monkeypatch):
    def raise_for_status():
        raise requests.HTTPError("404 Client Error")

    monkeypatch.setattr(
        feeds.requests,
        "get",
        lambda url, timeout=None, headers=None: SimpleNamespace(
            status_code=404, text="", content=b"", raise_for_status=raise_for_status
        ),
    )

    with pytest.raises(FetchError, match="404"):
        fetch_feed("https://example.com/missing.xml")


def test_parse_feed_prefers_atom_content_over_summary():
    document = """<?xml version="1.0"?>
    <feed xmlns="http://www.w3.org/2005/Atom"><title>T</title>
      <entry>
        <title>Full</title>
        <link href="https://example.com/full"/>
        <id>full</id>
        <summary>Short teaser</summary>
        <content type="html">&lt;p&gt;Full body&lt;/p&gt;</content>
      </entry>
    </feed>"""

    assert parse_feed(document).items[0].content == "<p>Full body</p>"


def test_parse_feed_keeps_item_markup_as_sent():
    body = (
        '<iframe src="https://www.youtube.com/embed/x"></iframe>'
        '<div style="color:red" dir="auto">x</div>'
        '<a href="/relative">more</a>'
    )
    document = rss_document(
        [
            {
                "title": "Embed",
                "link": "https://example.com/embed",
                "description": f"<![CDATA[{body}]]>",
            }
        ]
    )

    content = parse_feed(document).items[0].content

    assert '<iframe src="https://www.youtube.com/embed/x"></iframe>' in content
    assert 'style="color:red"' in content
    assert 'href="/relative"' in content


def test_parse_feed_reads_atom_updated_before_published():
    document = """<?xml version="1.0"?>
    <feed xmlns="http://www.w3.org/2005/Atom"><title>T</title>
      <entry>
        <title>Dated</title>
        <link href="https://example.com/dated"/>
        <id>dated</id>
        <published>2024-01-01T00:00:00Z</published>
        <updated>2024-03-01T12:00:00Z</updated>
      </entry>
    </feed>"""

    item = parse_feed(document).items[0]

    assert item.pub_date == "2024-03-01T12:00:00Z"
    assert item.published_at == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

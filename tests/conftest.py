"""Shared test fixtures for rss_to_note tests."""

from typing import Dict, List

import pytest

from rss_to_note.config import SettingsStore
from rss_to_note.feeds import FetchError, FetchResponse
from rss_to_note.models import FeedConfig, GlobalConfig
from rss_to_note.runner import FeedSyncRunner
from rss_to_note.vault import LocalVault


SAMPLE_RSS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:dc="http://purl.org/dc/elements/1.1/"
     xmlns:content="http://purl.org/rss/1.0/modules/content/">
  <channel>
    <title>Test Feed</title>
    <link>https://example.com</link>
    <description>A test RSS feed</description>
    <lastBuildDate>Tue, 02 Jan 2024 12:00:00 GMT</lastBuildDate>
    <item>
      <title>First Article</title>
      <link>https://example.com/article-1</link>
      <author>Jane Doe</author>
      <description>Description of the first article</description>
      <pubDate>Tue, 02 Jan 2024 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Second Article</title>
      <link>https://example.com/article-2</link>
      <dc:creator>John Roe</dc:creator>
      <content:encoded><![CDATA[<p>Encoded <b>body</b></p>]]></content:encoded>
      <pubDate>Mon, 01 Jan 2024 09:00:00 GMT</pubDate>
    </item>
  </channel>
</rss>"""

SAMPLE_ATOM_XML = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Test Atom Feed</title>
  <link href="https://example.com"/>
  <updated>2024-02-13T10:00:00Z</updated>
  <id>urn:uuid:feed</id>
  <entry>
    <title>Atom Entry 1</title>
    <link href="https://example.com/entry-1"/>
    <id>urn:uuid:entry-1</id>
    <author><name>Atom Author</name></author>
    <summary>Summary of entry 1</summary>
    <updated>2024-02-13T10:00:00Z</updated>
  </entry>
</feed>"""

SAMPLE_MALFORMED_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Malformed Feed</title>
    <item>
      <title>Good Item</title>
      <link>https://example.com/good</link>
    </item>
    <item>
      <title>Bad Item
"""

EMPTY_LINK_RSS_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Mixed Feed</title>
    <item>
      <title>No Link</title>
      <link></link>
      <description>Nothing to point at</description>
    </item>
    <item>
      <title>Has Link</title>
      <link>https://example.com/has-link</link>
      <description>Body</description>
    </item>
  </channel>
</rss>"""


def rss_document(items: List[Dict[str, str]], title: str = "Generated Feed") -> str:
    """Build a small RSS document from item field dicts."""
    parts = []
    for item in items:
        fields = "".join(f"<{key}>{value}</{key}>" for key, value in item.items())
        parts.append(f"<item>{fields}</item>")
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<rss version="2.0"><channel><title>{title}</title>{"".join(parts)}</channel></rss>'
    )


class FakeFetcher:
    """Serves canned documents by URL; unknown URLs fail like a network error."""

    def __init__(self, documents: Dict[str, str]):
        self.documents = dict(documents)
        self.calls: List[str] = []

    def __call__(self, url: str) -> FetchResponse:
        self.calls.append(url)
        if url not in self.documents:
            raise FetchError(f"Connection refused: {url}")
        return FetchResponse(status=200, text=self.documents[url])


@pytest.fixture
def sample_rss_xml():
    return SAMPLE_RSS_XML


@pytest.fixture
def sample_atom_xml():
    return SAMPLE_ATOM_XML


@pytest.fixture
def sample_malformed_xml():
    return SAMPLE_MALFORMED_XML


@pytest.fixture
def vault(tmp_path):
    root = tmp_path / "vault"
    root.mkdir()
    return LocalVault(root)


@pytest.fixture
def store(tmp_path):
    store = SettingsStore(tmp_path / "settings" / "data.json")
    store.config = GlobalConfig(feeds=[])
    return store


@pytest.fixture
def notices():
    return []


@pytest.fixture
def make_runner(store, vault, notices):
    def factory(documents: Dict[str, str]) -> FeedSyncRunner:
        return FeedSyncRunner(
            store, vault, fetcher=FakeFetcher(documents), notify=notices.append
        )

    return factory


@pytest.fixture
def add_feed(store):
    def factory(url: str, name: str = "Feed", **kwargs) -> FeedConfig:
        feed = FeedConfig(id=f"id-{len(store.config.feeds)}", url=url, name=name, **kwargs)
        store.config.feeds.append(feed)
        return feed

    return factory

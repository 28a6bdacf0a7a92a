import unittest
from datetime import datetime, timedelta, timezone

from tress.errors import ParseError
from tress.parsers.feed import (
    AtomFeed,
    FeedEntry,
    FeedLink,
    RssChannel,
    parse_feed,
    resolve_entry_url,
    resolve_publish_time,
    strip_markup,
)

ATOM_FEED = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Example Feed</title>
  <id>urn:example:feed</id>
  <updated>2024-01-01T00:00:00Z</updated>
  <icon>https://e.g/icon.png</icon>
  <entry>
    <id>p1</id>
    <title>Hello</title>
    <updated>2024-01-01T00:00:00Z</updated>
  </entry>
  <entry>
    <id>urn:example:p2</id>
    <title>Links</title>
    <published>2023-12-30T08:30:00Z</published>
    <updated>2024-01-02T00:00:00Z</updated>
    <link rel="alternate" type="application/json" href="https://e.g/p2.json"/>
    <link rel="alternate" type="text/html" href="https://e.g/p2"/>
    <summary type="html">&lt;p&gt;Second &lt;em&gt;post&lt;/em&gt;&lt;/p&gt;</summary>
    <content type="html">&lt;p&gt;Full body&lt;/p&gt;</content>
  </entry>
</feed>
"""

RSS_FEED = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example RSS</title>
    <link>https://e.g/</link>
    <description>Example channel</description>
    <item>
      <title>First</title>
      <link>https://e.g/first</link>
      <guid>https://e.g/first</guid>
      <pubDate>Mon, 25 Nov 2024 12:00:00 GMT</pubDate>
      <description>&lt;p&gt;Hello &lt;b&gt;world&lt;/b&gt;&lt;/p&gt;</description>
    </item>
    <item>
      <title>Undated</title>
      <link>https://e.g/undated</link>
      <pubDate>sometime last week</pubDate>
    </item>
  </channel>
</rss>
"""


UNTYPED_ALTERNATE_FEED = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Untyped</title>
  <entry>
    <id>urn:example:p3</id>
    <title>Two alternates</title>
    <updated>2024-01-03T00:00:00Z</updated>
    <link rel="alternate" href="https://e.g/plain"/>
    <link rel="alternate" type="text/html" href="https://e.g/html"/>
  </entry>
</feed>
"""


class ParseFeedTests(unittest.TestCase):
    def test_atom_document_parses_as_atom(self):
        document = parse_feed(ATOM_FEED)

        self.assertIsInstance(document, AtomFeed)
        self.assertEqual(document.title, "Example Feed")
        self.assertEqual(document.icon, "https://e.g/icon.png")
        self.assertEqual([entry.title for entry in document.entries], ["Hello", "Links"])

        first = document.entries[0]
        self.assertEqual(first.id, "p1")
        self.assertEqual(first.links, [])
        self.assertEqual(first.updated, datetime(2024, 1, 1, tzinfo=timezone.utc))
        self.assertIsNone(first.published)

    def test_rss_document_falls_back_to_rss(self):
        document = parse_feed(RSS_FEED)

        self.assertIsInstance(document, RssChannel)
        self.assertEqual(document.title, "Example RSS")
        self.assertEqual(len(document.entries), 2)
        self.assertEqual(resolve_entry_url(document.entries[0]), "https://e.g/first")

    def test_unrecognised_document_reports_both_failures(self):
        with self.assertRaises(ParseError) as ctx:
            parse_feed(b"this is not a feed at all")

        error = ctx.exception
        self.assertIsNotNone(error.atom_error)
        self.assertIsNotNone(error.rss_error)
        self.assertIn("atom", str(error))
        self.assertIn("rss", str(error))

    def test_entry_content_and_summary_are_kept(self):
        entry = parse_feed(ATOM_FEED).entries[1]

        self.assertIn("Full body", entry.content)
        self.assertEqual(strip_markup(entry.summary), "Second post")


class EntryUrlTests(unittest.TestCase):
    def test_alternate_html_link_wins_over_plain_alternate(self):
        entry = parse_feed(ATOM_FEED).entries[1]
        self.assertEqual(resolve_entry_url(entry), "https://e.g/p2")

    def test_untyped_alternate_does_not_count_as_html(self):
        document = parse_feed(UNTYPED_ALTERNATE_FEED)
        entry = document.entries[0]

        self.assertEqual([link.type for link in entry.links], [None, "text/html"])
        self.assertEqual(resolve_entry_url(entry), "https://e.g/html")

    def test_any_alternate_link_before_other_relations(self):
        entry = FeedEntry(
            id="urn:x",
            title="x",
            links=[
                FeedLink(href="https://e.g/x.mp3", rel="enclosure", type="audio/mpeg"),
                FeedLink(href="https://e.g/x.json", rel="alternate", type="application/json"),
            ],
        )
        self.assertEqual(resolve_entry_url(entry), "https://e.g/x.json")

    def test_first_link_when_no_alternate(self):
        entry = FeedEntry(
            id="urn:x",
            title="x",
            links=[
                FeedLink(href="https://e.g/related", rel="related"),
                FeedLink(href="https://e.g/x.mp3", rel="enclosure"),
            ],
        )
        self.assertEqual(resolve_entry_url(entry), "https://e.g/related")

    def test_entry_id_when_no_links(self):
        self.assertEqual(resolve_entry_url(FeedEntry(id="p1", title="x")), "p1")
        self.assertIsNone(resolve_entry_url(FeedEntry(id=None, title="x")))


class PublishTimeTests(unittest.TestCase):
    def test_atom_prefers_published_then_updated(self):
        document = parse_feed(ATOM_FEED)

        self.assertEqual(resolve_publish_time(document, document.entries[0]), "2024-01-01T00:00:00Z")
        self.assertEqual(resolve_publish_time(document, document.entries[1]), "2023-12-30T08:30:00Z")

    def test_rss_uses_pub_date(self):
        document = parse_feed(RSS_FEED)
        self.assertEqual(resolve_publish_time(document, document.entries[0]), "2024-11-25T12:00:00Z")

    def test_unparsable_date_falls_back_to_sync_time(self):
        document = parse_feed(RSS_FEED)
        now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))

        self.assertEqual(resolve_publish_time(document, document.entries[1], now=now), "2024-05-01T12:00:00+02:00")

    def test_missing_date_defaults_to_current_time(self):
        document = RssChannel(title="t", entries=[FeedEntry(id="a", title="a")])
        before = datetime.now().astimezone().replace(microsecond=0)

        stamp = resolve_publish_time(document, document.entries[0])

        parsed = datetime.fromisoformat(stamp.replace("Z", "+00:00"))
        self.assertGreaterEqual(parsed, before)


class StripMarkupTests(unittest.TestCase):
    def test_keeps_only_text_nodes(self):
        self.assertEqual(strip_markup("<p>Hello <b>world</b></p>"), "Hello world")

    def test_empty_summary_is_none(self):
        self.assertIsNone(strip_markup(None))
        self.assertIsNone(strip_markup(""))


if __name__ == "__main__":
    unittest.main()

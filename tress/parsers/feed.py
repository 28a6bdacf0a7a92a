"""
Feed document parsing: raw bytes -> AtomFeed | RssChannel.

The document is read once with feedparser and then interpreted as Atom; if
that fails it is interpreted as RSS. When both interpretations fail a
ParseError carrying both reasons is raised.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Union

import feedparser
from bs4 import BeautifulSoup
from lxml import etree

from tress.errors import ParseError

logger = logging.getLogger(__name__)

HTML_TYPES = {"text/html", "application/xhtml+xml"}
ATOM_NAMESPACES = ("http://www.w3.org/2005/Atom", "http://purl.org/atom/ns#")


class FormatMismatch(ValueError):
    """The document is not of the format being tried."""


@dataclass
class FeedLink:
    href: str
    rel: str = "alternate"
    type: Optional[str] = None


@dataclass
class FeedEntry:
    id: Optional[str]
    title: str
    summary: Optional[str] = None
    content: Optional[str] = None
    published: Optional[datetime] = None
    updated: Optional[datetime] = None
    links: List[FeedLink] = field(default_factory=list)


@dataclass
class AtomFeed:
    title: str
    icon: Optional[str] = None
    entries: List[FeedEntry] = field(default_factory=list)


@dataclass
class RssChannel:
    title: str
    icon: Optional[str] = None
    entries: List[FeedEntry] = field(default_factory=list)


ParsedFeed = Union[AtomFeed, RssChannel]


def parse_feed(content: bytes) -> ParsedFeed:
    parsed = feedparser.parse(content)
    try:
        return parse_atom(parsed, content)
    except FormatMismatch as atom_error:
        try:
            return parse_rss(parsed)
        except FormatMismatch as rss_error:
            raise ParseError(atom_error, rss_error) from rss_error


def parse_atom(parsed, content: Optional[bytes] = None) -> AtomFeed:
    _require_version(parsed, "atom")
    entries = parsed.get("entries", [])
    declared = _declared_link_types(content) if content else None
    if declared is None or len(declared) != len(entries):
        declared = [None] * len(entries)
    return AtomFeed(
        title=_feed_title(parsed),
        icon=_feed_icon(parsed),
        entries=[_to_entry(entry, types) for entry, types in zip(entries, declared)],
    )


def _declared_link_types(content: bytes) -> Optional[List[List[Optional[str]]]]:
    """
    The ``type`` attribute of each entry's <link> elements, as written.

    feedparser fills in ``text/html`` for links that declare no type, which
    makes an untyped alternate indistinguishable from an HTML one.
    """
    parser = etree.XMLParser(recover=True, resolve_entities=False, no_network=True)
    try:
        root = etree.fromstring(content, parser=parser)
    except (etree.XMLSyntaxError, ValueError) as exc:
        logger.debug("Could not re-read Atom links: %s", exc)
        return None
    if root is None:
        return None
    for namespace in ATOM_NAMESPACES:
        entries = root.findall(f"{{{namespace}}}entry")
        if entries:
            return [[link.get("type") for link in entry.findall(f"{{{namespace}}}link")] for entry in entries]
    return None


def parse_rss(parsed) -> RssChannel:
    _require_version(parsed, "rss")
    return RssChannel(
        title=_feed_title(parsed),
        icon=_feed_icon(parsed),
        entries=[_to_entry(entry) for entry in parsed.get("entries", [])],
    )


def _require_version(parsed, family: str) -> None:
    version = parsed.get("version") or ""
    if version.startswith(family):
        return
    if version:
        raise FormatMismatch(f"document is {version}, not {family}")
    reason = parsed.get("bozo_exception")
    raise FormatMismatch(f"no {family} root element ({reason or 'unrecognised document'})")


def _feed_title(parsed) -> str:
    return (parsed.feed.get("title") or "").strip()


def _feed_icon(parsed) -> Optional[str]:
    feed = parsed.feed
    image = feed.get("image") or {}
    return feed.get("icon") or feed.get("logo") or image.get("href") or None


def _to_entry(entry, declared_types: Optional[List[Optional[str]]] = None) -> FeedEntry:
    content = None
    if entry.get("content"):
        content = entry["content"][0].get("value")
    raw_links = entry.get("links", [])
    if declared_types is not None and len(declared_types) != len(raw_links):
        declared_types = None
    links = []
    for index, link in enumerate(raw_links):
        if not link.get("href"):
            continue
        link_type = declared_types[index] if declared_types is not None else link.get("type")
        links.append(FeedLink(href=link["href"], rel=link.get("rel", "alternate"), type=link_type))
    return FeedEntry(
        id=entry.get("id") or None,
        title=(entry.get("title") or "").strip(),
        summary=entry.get("summary"),
        content=content,
        published=_parse_datetime(entry.get("published_parsed")),
        updated=_parse_datetime(entry.get("updated_parsed")),
        links=links,
    )


def _parse_datetime(struct_time) -> Optional[datetime]:
    if not struct_time:
        return None
    return datetime(*struct_time[:6], tzinfo=timezone.utc)


def resolve_entry_url(entry: FeedEntry) -> Optional[str]:
    """Canonical URL of an entry; this is the dedup key, so the order matters."""
    for link in entry.links:
        if link.rel == "alternate" and (link.type or "").lower() in HTML_TYPES:
            return link.href
    for link in entry.links:
        if link.rel == "alternate":
            return link.href
    if entry.links:
        return entry.links[0].href
    return entry.id


def resolve_publish_time(document: ParsedFeed, entry: FeedEntry, now: Optional[datetime] = None) -> str:
    """
    Atom: published, then updated. RSS: the parsed pubDate.

    Missing or unparsable dates fall back to the local time of the sync, so
    such posts carry the time they were first seen rather than when they were
    published.
    """
    if isinstance(document, AtomFeed):
        moment = entry.published or entry.updated
    else:
        moment = entry.published
    if moment is None:
        moment = now or datetime.now().astimezone()
    return format_timestamp(moment)


def format_timestamp(moment: datetime) -> str:
    offset = moment.utcoffset()
    if offset is not None and offset.total_seconds() == 0:
        return moment.strftime("%Y-%m-%dT%H:%M:%SZ")
    return moment.isoformat(timespec="seconds")


def parse_timestamp(value: str) -> datetime:
    """Inverse of format_timestamp; naive values are taken as UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def strip_markup(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    return BeautifulSoup(text, "lxml").get_text().strip()

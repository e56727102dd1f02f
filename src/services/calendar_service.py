"""Week-bucketed public calendar built from a course's log items."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Mapping

from config import CALENDAR_KIND_COLUMNS, FIRST_PARTY_LINK_DOMAIN, LECTURE_LINK_DOMAIN
from services.title_transliterator import transliterate

LOGGER = logging.getLogger("courselog.calendar")


@dataclass(frozen=True)
class LogItem:
    id: int
    course_id: int
    kind: str
    title: str
    description: str | None = None
    link: str | None = None
    date: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "LogItem":
        return cls(
            id=int(row["id"]),
            course_id=int(row.get("course_id") or 0),
            kind=str(row.get("kind") or ""),
            title=str(row.get("title") or ""),
            description=row.get("description"),
            link=row.get("link"),
            date=row.get("date"),
        )


@dataclass(frozen=True)
class PublicLogItem:
    """Render-only projection of a LogItem; never persisted."""

    id: int
    kind: str
    title: str
    description: str | None
    date: str | None
    link: str | None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CalendarWeek:
    week_number: int
    start_date: str
    end_date: str
    items_by_kind: list[tuple[str, list[PublicLogItem]]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "week_number": self.week_number,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "items_by_kind": [
                {"kind": kind, "items": [item.to_dict() for item in items]}
                for kind, items in self.items_by_kind
            ],
        }


def filter_public_link(link: str | None, kind: str, show_lecture_links: bool) -> str | None:
    """
    Apply the public link policy.

    Links to the first-party notes site are always shown; Google Drive links
    only on Lecture items of a course that opted in; everything else is hidden.
    """
    if not link:
        return None
    if FIRST_PARTY_LINK_DOMAIN in link:
        return link
    if LECTURE_LINK_DOMAIN in link and kind == "Lecture" and show_lecture_links:
        return link
    return None


def parse_item_date(raw: str | None) -> date | None:
    """``YYYY-MM-DD`` -> date; None for blank or malformed input."""
    if not raw:
        return None
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError:
        return None


def _coerce(item: LogItem | Mapping[str, Any]) -> LogItem:
    return item if isinstance(item, LogItem) else LogItem.from_row(item)


def to_public(
    item: LogItem,
    show_lecture_links: bool,
    cached_translations: Mapping[str, str],
    use_transliteration: bool,
) -> PublicLogItem:
    title = transliterate(item.kind, item.title) if use_transliteration else item.title
    description: str | None = None
    if item.description:
        if use_transliteration:
            description = cached_translations.get(item.description, item.description)
        else:
            description = item.description
    return PublicLogItem(
        id=item.id,
        kind=item.kind,
        title=title,
        description=description,
        date=item.date,
        link=filter_public_link(item.link, item.kind, show_lecture_links),
    )


def _format_day(d: date) -> str:
    return d.strftime("%b %d")


def _bucket_by_week(
    entries: list[tuple[int, PublicLogItem]],
) -> dict[int, dict[str, list[PublicLogItem]]]:
    weeks: dict[int, dict[str, list[PublicLogItem]]] = {}
    for week_index, public_item in entries:
        weeks.setdefault(week_index, {}).setdefault(public_item.kind, []).append(public_item)
    return weeks


def build_calendar(
    items: Iterable[LogItem | Mapping[str, Any]],
    show_lecture_links: bool,
    cached_translations: Mapping[str, str],
    use_transliteration: bool,
) -> tuple[list[CalendarWeek], list[PublicLogItem], list[str]]:
    """
    Group dated log items into Monday-Sunday weeks.

    Week 1 is the week holding the earliest dated item. Every week up to the
    latest item is emitted, empty ones included. Columns ("active kinds") are
    the kinds of ``CALENDAR_KIND_COLUMNS`` that occur at least once; each week
    lists all of them, with an empty list where it has no items.

    Items without a date go to the unscheduled list in input order. Items whose
    date is present but malformed are left out of both.

    Args:
        items: LogItem objects or row mappings with the LogItem fields.
        show_lecture_links: Course setting for Drive links on lectures.
        cached_translations: Source description -> English description.
        use_transliteration: True for the English view, False for the raw one.

    Returns:
        (weeks, unscheduled, active_kinds)
    """
    log_items = [_coerce(i) for i in items]

    def project(item: LogItem) -> PublicLogItem:
        return to_public(item, show_lecture_links, cached_translations, use_transliteration)

    dated = [i for i in log_items if i.date]
    unscheduled = [project(i) for i in log_items if not i.date]

    parsed: list[tuple[LogItem, date]] = []
    for item in dated:
        d = parse_item_date(item.date)
        if d is None:
            LOGGER.warning("log item %s has unparseable date %r; left off the calendar", item.id, item.date)
            continue
        parsed.append((item, d))

    if not parsed:
        return [], unscheduled, []

    parsed.sort(key=lambda pair: pair[1])
    epoch = parsed[0][1]
    epoch_monday = epoch - timedelta(days=epoch.weekday())

    buckets = _bucket_by_week(
        [((d - epoch_monday).days // 7, project(item)) for item, d in parsed]
    )
    seen_kinds = {kind for by_kind in buckets.values() for kind in by_kind}
    active_kinds = [k for k in CALENDAR_KIND_COLUMNS if k in seen_kinds]

    weeks: list[CalendarWeek] = []
    for week_index in range(max(buckets) + 1):
        by_kind = buckets.get(week_index, {})
        monday = epoch_monday + timedelta(days=week_index * 7)
        weeks.append(
            CalendarWeek(
                week_number=week_index + 1,
                start_date=_format_day(monday),
                end_date=_format_day(monday + timedelta(days=6)),
                items_by_kind=[(kind, list(by_kind.get(kind, []))) for kind in active_kinds],
            )
        )
    return weeks, unscheduled, active_kinds

"""Tests for the public calendar builder (pure, no DB)."""

from __future__ import annotations

import pytest

from services.calendar_service import (
    CalendarWeek,
    LogItem,
    build_calendar,
    filter_public_link,
    parse_item_date,
    to_public,
)

NOTES = "https://notes.lnjng.com/cs61a/lec1"
DRIVE = "https://drive.google.com/file/d/abc"
OTHER = "https://example.com/slides.pdf"


def _item(id_, kind="Lecture", title="t", date=None, link=None, description=None):
    return LogItem(id=id_, course_id=1, kind=kind, title=title, description=description, link=link, date=date)


def _build(items, show_lecture_links=False, translations=None, english=True):
    return build_calendar(items, show_lecture_links, translations or {}, english)


# ──────────────────────────────────────────────────────────────
# link policy
# ──────────────────────────────────────────────────────────────

class TestFilterPublicLink:
    @pytest.mark.parametrize("kind", ["Lecture", "Homework", "Other"])
    @pytest.mark.parametrize("show", [True, False])
    def test_first_party_always_shown(self, kind, show):
        assert filter_public_link(NOTES, kind, show) == NOTES

    def test_drive_lecture_with_opt_in(self):
        assert filter_public_link(DRIVE, "Lecture", True) == DRIVE

    def test_drive_lecture_without_opt_in(self):
        assert filter_public_link(DRIVE, "Lecture", False) is None

    def test_drive_on_non_lecture_hidden(self):
        assert filter_public_link(DRIVE, "Homework", True) is None

    def test_other_domains_hidden(self):
        assert filter_public_link(OTHER, "Lecture", True) is None

    def test_empty(self):
        assert filter_public_link(None, "Lecture", True) is None
        assert filter_public_link("", "Lecture", True) is None


class TestParseItemDate:
    def test_valid(self):
        assert parse_item_date("2024-09-02").isoformat() == "2024-09-02"

    @pytest.mark.parametrize("raw", [None, "", "2024-13-01", "09/02/2024", "soon"])
    def test_invalid(self, raw):
        assert parse_item_date(raw) is None


class TestToPublic:
    def test_english_view_transliterates_and_translates(self):
        item = _item(1, title="第三讲", description="递归", link=DRIVE)
        public = to_public(item, True, {"递归": "Recursion"}, True)
        assert public.title == "Lecture 3"
        assert public.description == "Recursion"
        assert public.link == DRIVE

    def test_english_view_uncached_description_falls_back(self):
        public = to_public(_item(1, description="树"), False, {}, True)
        assert public.description == "树"

    def test_raw_view_keeps_text(self):
        item = _item(1, title="第三讲", description="递归")
        public = to_public(item, False, {"递归": "Recursion"}, False)
        assert public.title == "第三讲"
        assert public.description == "递归"

    def test_empty_description_is_none(self):
        assert to_public(_item(1, description=""), False, {}, True).description is None


# ──────────────────────────────────────────────────────────────
# build_calendar
# ──────────────────────────────────────────────────────────────

class TestBuildCalendar:
    def test_no_items(self):
        assert _build([]) == ([], [], [])

    def test_contiguous_weeks_including_empty_ones(self):
        items = [
            _item(1, "Lecture", date="2024-09-02"),
            _item(2, "Homework", date="2024-09-04"),
            _item(3, "Lecture", date="2024-09-23"),
        ]
        weeks, unscheduled, active = _build(items)

        assert [w.week_number for w in weeks] == [1, 2, 3, 4]
        assert unscheduled == []
        assert active == ["Lecture", "Homework"]
        assert dict(weeks[0].items_by_kind)["Lecture"][0].id == 1
        assert dict(weeks[0].items_by_kind)["Homework"][0].id == 2
        assert all(items == [] for _, items in weeks[1].items_by_kind)
        assert all(items == [] for _, items in weeks[2].items_by_kind)
        assert dict(weeks[3].items_by_kind)["Lecture"][0].id == 3

    def test_week_starts_on_monday_of_earliest_item(self):
        # 2024-09-04 is a Wednesday; 2024-09-09 is the following Monday.
        weeks, _, _ = _build([_item(1, date="2024-09-04"), _item(2, date="2024-09-09")])
        assert len(weeks) == 2
        assert weeks[0].start_date == "Sep 02"
        assert weeks[0].end_date == "Sep 08"
        assert weeks[1].start_date == "Sep 09"
        assert weeks[1].end_date == "Sep 15"

    def test_sunday_stays_in_same_week(self):
        weeks, _, _ = _build([_item(1, date="2024-09-02"), _item(2, date="2024-09-08")])
        assert len(weeks) == 1
        assert [i.id for i in dict(weeks[0].items_by_kind)["Lecture"]] == [1, 2]

    def test_items_sorted_by_date_within_week(self):
        weeks, _, _ = _build([_item(2, date="2024-09-05"), _item(1, date="2024-09-03")])
        assert [i.id for i in dict(weeks[0].items_by_kind)["Lecture"]] == [1, 2]

    def test_undated_items_are_unscheduled_in_input_order(self):
        items = [_item(1, date=None), _item(2, date="2024-09-02"), _item(3, kind="Other", date="")]
        weeks, unscheduled, _ = _build(items)
        assert [i.id for i in unscheduled] == [1, 3]
        assert len(weeks) == 1

    def test_only_undated_items(self):
        weeks, unscheduled, active = _build([_item(1)])
        assert weeks == []
        assert active == []
        assert [i.id for i in unscheduled] == [1]

    def test_malformed_date_dropped_everywhere(self):
        weeks, unscheduled, _ = _build([_item(1, date="not-a-date"), _item(2, date="2024-09-02")])
        ids = [i.id for w in weeks for _, items in w.items_by_kind for i in items]
        assert ids == [2]
        assert unscheduled == []

    def test_active_kinds_follow_column_order(self):
        items = [
            _item(1, "Quiz", date="2024-09-02"),
            _item(2, "Lecture", date="2024-09-03"),
            _item(3, "Lab", date="2024-09-04"),
        ]
        _, _, active = _build(items)
        assert active == ["Lecture", "Lab", "Quiz"]

    def test_every_week_lists_every_active_kind(self):
        items = [_item(1, "Lecture", date="2024-09-02"), _item(2, "Quiz", date="2024-09-10")]
        weeks, _, active = _build(items)
        for week in weeks:
            assert [kind for kind, _ in week.items_by_kind] == active

    def test_final_and_project_not_columns(self):
        items = [
            _item(1, "Lecture", date="2024-09-02"),
            _item(2, "Final", date="2024-12-16"),
            _item(3, "Project", date="2024-10-01"),
        ]
        weeks, _, active = _build(items)
        assert active == ["Lecture"]
        assert "Final" not in [k for w in weeks for k, _ in w.items_by_kind]

    def test_link_policy_applied(self):
        items = [
            _item(1, "Lecture", date="2024-09-02", link=DRIVE),
            _item(2, "Homework", date="2024-09-02", link=DRIVE),
            _item(3, "Homework", date="2024-09-02", link=NOTES),
        ]
        weeks, _, _ = _build(items, show_lecture_links=True)
        links = {i.id: i.link for _, items in weeks[0].items_by_kind for i in items}
        assert links == {1: DRIVE, 2: None, 3: NOTES}

    def test_accepts_row_mappings(self):
        rows = [{"id": 1, "course_id": 1, "kind": "Lecture", "title": "第一讲", "date": "2024-09-02"}]
        weeks, _, _ = _build(rows)
        assert dict(weeks[0].items_by_kind)["Lecture"][0].title == "Lecture 1"

    def test_idempotent(self):
        items = [_item(1, date="2024-09-02", title="第一讲"), _item(2, kind="Quiz", date="2024-09-20")]
        assert _build(items) == _build(items)

    def test_to_dict_shape(self):
        weeks, _, _ = _build([_item(1, date="2024-09-02")])
        data = weeks[0].to_dict()
        assert data["week_number"] == 1
        assert data["items_by_kind"][0]["kind"] == "Lecture"
        assert data["items_by_kind"][0]["items"][0]["id"] == 1
        assert isinstance(weeks[0], CalendarWeek)

"""
Rule-based English titles for Chinese course-log titles.

Turns numbering idioms such as "第二十一讲", "作业三甲" or "期中考试一" into
"Lecture 21", "Homework 3A" and "Midterm 1". Pure string matching, no I/O.
Anything the rules do not recognise is returned unchanged.
"""

from __future__ import annotations

_DIGITS = {
    "零": 0,
    "一": 1,
    "二": 2,
    "三": 3,
    "四": 4,
    "五": 5,
    "六": 6,
    "七": 7,
    "八": 8,
    "九": 9,
}
_TEN = "十"
_HUNDRED = "百"
_ZERO = "零"

_ENGLISH_KINDS = {
    "Lecture": "Lecture",
    "Discussion": "Discussion",
    "Lab": "Lab",
    "Homework": "Homework",
    "Quiz": "Quiz",
    "Midterm": "Midterm",
    "Final": "Final",
    "Project": "Project",
}

_ORDINAL_PREFIX = "第"
_ORDINAL_SUFFIXES = ("讲", "次")
_MIDTERM_PREFIX = "期中考试"
_FINAL_PREFIX = "期末考试"

# Checked in this order; first matching prefix with a parsable remainder wins.
_KIND_PREFIXES: tuple[tuple[str, str], ...] = (
    ("作业", "Homework"),
    ("测验", "Quiz"),
    ("实验", "Lab"),
    ("讨论", "Discussion"),
    ("讲座", "Lecture"),
    ("项目", "Project"),
)

_SECTION_LETTERS = {"甲": "A", "乙": "B", "丙": "C"}


def english_kind(kind: str) -> str:
    """Canonical English noun for a log-item kind; unknown kinds become "Other"."""
    return _ENGLISH_KINDS.get(kind, "Other")


def _nonzero_digit(ch: str) -> int | None:
    value = _DIGITS.get(ch)
    return value if value else None


def _parse_below_hundred(token: str) -> int | None:
    """Parse 1..99: "五", "十", "十五", "五十", "五十五"."""
    if len(token) == 1:
        if token == _TEN:
            return 10
        return _nonzero_digit(token)
    if len(token) == 2:
        if token[0] == _TEN:
            units = _nonzero_digit(token[1])
            return None if units is None else 10 + units
        if token[1] == _TEN:
            tens = _nonzero_digit(token[0])
            return None if tens is None else tens * 10
        return None
    if len(token) == 3 and token[1] == _TEN:
        tens = _nonzero_digit(token[0])
        units = _nonzero_digit(token[2])
        if tens is None or units is None:
            return None
        return tens * 10 + units
    return None


def chinese_num_to_int(token: str) -> int | None:
    """
    Convert a Chinese numeral to an integer.

    Supports 零..九, 十, 十N, N十, N十M and a leading hundreds group
    (D百, D百N十M, D百零N). "零" on its own is 0.

    Args:
        token: Numeral characters only, without prefix or suffix.

    Returns:
        The value, or None when the token is not a numeral this grammar can
        fully decompose. None is distinct from 0.
    """
    if not token:
        return None
    if token == _ZERO:
        return 0

    if len(token) >= 2 and token[1] == _HUNDRED:
        hundreds = _nonzero_digit(token[0])
        if hundreds is None:
            return None
        rest = token[2:]
        if not rest:
            return hundreds * 100
        if rest[0] == _ZERO:
            # 一百零五: only a single unit digit may follow the zero.
            if len(rest) != 2:
                return None
            units = _nonzero_digit(rest[1])
            return None if units is None else hundreds * 100 + units
        remainder = _parse_below_hundred(rest)
        return None if remainder is None else hundreds * 100 + remainder

    return _parse_below_hundred(token)


def _match_ordinal(en_kind: str, title: str) -> str | None:
    if not title.startswith(_ORDINAL_PREFIX):
        return None
    rest = title[len(_ORDINAL_PREFIX):]
    for suffix in _ORDINAL_SUFFIXES:
        if rest.endswith(suffix):
            n = chinese_num_to_int(rest[: -len(suffix)])
            if n is not None:
                return f"{en_kind} {n}"
    return None


def _match_exam(prefix: str, label: str, title: str) -> str | None:
    if not title.startswith(prefix):
        return None
    rest = title[len(prefix):]
    if not rest:
        return label
    n = chinese_num_to_int(rest)
    return None if n is None else f"{label} {n}"


def _match_kind_prefix(title: str) -> str | None:
    for cn_prefix, en_name in _KIND_PREFIXES:
        if not title.startswith(cn_prefix):
            continue
        rest = title[len(cn_prefix):]
        if not rest:
            return en_name
        letter = _SECTION_LETTERS.get(rest[-1])
        number_part = rest[:-1] if letter else rest
        n = chinese_num_to_int(number_part)
        if n is not None:
            return f"{en_name} {n}{letter or ''}"
    return None


def transliterate(kind: str, title: str) -> str:
    """
    Translate a log-item title from its Chinese numbering idiom.

    Rules, first match wins:
      1. 第<N>讲 / 第<N>次            -> "<Kind> N" (kind from the item)
      2. 期中考试[<N>] / 期末考试[<N>] -> "Midterm[ N]" / "Final[ N]"
      3. 作业/测验/实验/讨论/讲座/项目 + [<N>][甲|乙|丙]
                                       -> "Homework 3A", or the bare noun

    Args:
        kind: Log-item kind ("Lecture", "Homework", ...).
        title: Title as entered by the instructor.

    Returns:
        English title, or *title* itself when no rule applies.
    """
    en_kind = english_kind(kind)
    for candidate in (
        _match_ordinal(en_kind, title),
        _match_exam(_MIDTERM_PREFIX, "Midterm", title),
        _match_exam(_FINAL_PREFIX, "Final", title),
        _match_kind_prefix(title),
    ):
        if candidate is not None:
            return candidate
    return title

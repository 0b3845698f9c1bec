"""Parsers for the three text formats printed by ``p4``.

The formats have no schema, so each parser is a small state machine that
accepts exactly the documented line grammar and raises ``ParseError`` on
anything else. A parser never returns a partial result.

``fstat`` (status records)::

    ... depotFile //depot/proj/main.c
    ... headAction edit
    ... headChange 1234
    <blank>

``filelog -i`` (revision history)::

    //depot/proj/main.c
    ... #3 change 1234 edit on 2024/01/15 by jdoe@ws (text) 'Fix the frobnicator'
    ... ... branch into //depot/rel/main.c#1

``describe -s`` (change descriptions)::

    Change 1234 by jdoe@ws on 2024/01/15 14:30:00
    <blank>
    <TAB>Fix the frobnicator
    <blank>
    Affected files ...
"""

from __future__ import annotations

import calendar
import re
import time
from enum import Enum, auto
from typing import TYPE_CHECKING

from depotpack.config import FILE_IDENTITY_KEY, ChangeRecord
from depotpack.exceptions import ParseError, TimestampError

if TYPE_CHECKING:
    from collections.abc import Iterable

TIMESTAMP_FORMAT = "%Y/%m/%d %H:%M:%S"

_FSTAT_LINE = re.compile(r"\.\.\. (?P<key>\S+) (?P<value>.*)")
_FILELOG_REVISION = re.compile(r"\.\.\. #\d+ change (?P<change>\d+) ")
_TIMESTAMP_SHAPE = re.compile(r"\d{4}/\d{2}/\d{2} \d{2}:\d{2}:\d{2}")
_DESCRIBE_HEADER = re.compile(r"Change (?P<change>\d+) by (?P<user>[^@\s]+)(?:@(?P<client>\S+))? on (?P<rest>.*)")


class ParserState(Enum):
    """States shared by the record parsers."""

    IDLE = auto()
    AWAIT_BLANK = auto()
    IN_RECORD = auto()


def parse_timestamp(value: str) -> int:
    """Convert a server ``YYYY/MM/DD HH:MM:SS`` timestamp to unix seconds.

    The calendar fields are taken as-is, without any timezone correction, so
    the result carries the server's local time convention.

    Args:
        value (str): the timestamp as printed by the server

    Raises:
        TimestampError: if ``value`` does not follow the fixed, zero-padded format

    Returns:
        int: seconds since the epoch
    """
    if _TIMESTAMP_SHAPE.fullmatch(value) is None:
        raise TimestampError(value=value)
    try:
        return calendar.timegm(time.strptime(value, TIMESTAMP_FORMAT))
    except ValueError as exc:
        raise TimestampError(value=value) from exc


def parse_fstat(lines: Iterable[str]) -> dict[str, dict[str, str]]:
    """Parse ``p4 fstat`` output into ``{depot path: {attribute: value}}``.

    A record starts with a ``depotFile`` line and ends with a blank line.
    The ``depotFile`` attribute itself is the key and is not repeated in the
    attribute mapping. A path that appears twice keeps its last record.

    Args:
        lines (Iterable[str]): output lines without terminators

    Raises:
        ParseError: on a line outside ``... <key> <value>``, on an attribute
            before the ``depotFile`` line, or on an unterminated last record

    Returns:
        dict[str, dict[str, str]]: attribute mappings keyed by depot path
    """
    records: dict[str, dict[str, str]] = {}
    state = ParserState.IDLE
    path = ""
    attributes: dict[str, str] = {}
    number = 0
    for number, line in enumerate(lines, start=1):
        if not line:
            if state is ParserState.IN_RECORD:
                records[path] = attributes
                state = ParserState.IDLE
            continue

        match = _FSTAT_LINE.fullmatch(line)
        if match is None:
            raise ParseError(source="fstat", line_number=number, line=line)
        key = match.group("key")
        value = match.group("value")

        if state is ParserState.IDLE:
            if key != FILE_IDENTITY_KEY or not value:
                raise ParseError(
                    source="fstat",
                    line_number=number,
                    line=line,
                    message=f"Record must start with '{FILE_IDENTITY_KEY}'.",
                )
            path = value
            attributes = {}
            state = ParserState.IN_RECORD
        else:
            attributes[key] = value

    if state is ParserState.IN_RECORD:
        raise ParseError(
            source="fstat",
            line_number=number,
            line=path,
            message="Unterminated record at end of output.",
        )
    return records


def parse_filelog(lines: Iterable[str]) -> set[int]:
    """Collect the change ids of every revision line in ``p4 filelog`` output.

    Lines that are not revision entries (file headers, integration records)
    are skipped.

    Args:
        lines (Iterable[str]): output lines without terminators

    Returns:
        set[int]: the distinct change ids
    """
    changes: set[int] = set()
    for line in lines:
        match = _FILELOG_REVISION.search(line)
        if match is not None:
            changes.add(int(match.group("change")))
    return changes


def parse_describe(lines: Iterable[str]) -> dict[int, ChangeRecord]:
    """Parse ``p4 describe -s`` output into ``{change id: ChangeRecord}``.

    Transitions:

    - ``IDLE`` + header line -> ``AWAIT_BLANK``; other lines are ignored.
    - ``AWAIT_BLANK`` + blank line -> ``IN_RECORD``; anything else is fatal.
    - ``IN_RECORD`` + tab-prefixed line -> description line.
    - ``IN_RECORD`` + blank line -> record complete, back to ``IDLE``.
    - ``IN_RECORD`` + anything else is fatal.

    Args:
        lines (Iterable[str]): output lines without terminators

    Raises:
        ParseError: when a header is not followed by a blank line, when an
            untabbed line appears inside a description, or at end of output
            inside a record
        TimestampError: when a header carries an unparsable or missing timestamp

    Returns:
        dict[int, ChangeRecord]: change records keyed by change id
    """
    records: dict[int, ChangeRecord] = {}
    state = ParserState.IDLE
    header: dict[str, str | int] = {}
    description: list[str] = []
    number = 0
    for number, line in enumerate(lines, start=1):
        if state is ParserState.IDLE:
            match = _DESCRIBE_HEADER.fullmatch(line)
            if match is not None:
                header = {
                    "change": int(match.group("change")),
                    "user": match.group("user"),
                    "client": match.group("client") or "",
                    "time": parse_timestamp(" ".join(match.group("rest").split(maxsplit=2)[:2])),
                }
                description = []
                state = ParserState.AWAIT_BLANK
        elif state is ParserState.AWAIT_BLANK:
            if line:
                raise ParseError(
                    source="describe",
                    line_number=number,
                    line=line,
                    message="Change header must be followed by a blank line.",
                )
            state = ParserState.IN_RECORD
        elif not line:
            record = ChangeRecord.model_validate({**header, "description": "".join(description)})
            records[record.change] = record
            state = ParserState.IDLE
        elif line.startswith("\t"):
            description.append(line[1:] + "\n")
        else:
            raise ParseError(
                source="describe",
                line_number=number,
                line=line,
                message="Description lines must start with a tab.",
            )

    if state is not ParserState.IDLE:
        raise ParseError(
            source="describe",
            line_number=number,
            line=f"Change {header.get('change')}",
            message="Unterminated change record at end of output.",
        )
    return records

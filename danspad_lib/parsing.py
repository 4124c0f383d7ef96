"""Pure functions for parsing pad report lines."""

import logging
from typing import List, Optional

from danspad_lib import protocol
from danspad_lib.errors import ParseFailure
from danspad_lib.models import Report, ReportKind

logger = logging.getLogger(__name__)

_DIGITS = frozenset(b"0123456789")
_NEWLINE = protocol.TERMINATOR[0]


def report_kind_for_tag(tag: int) -> ReportKind:
    """Map a report's leading byte to the array it fills."""
    if tag == protocol.TAG_VALUES:
        return ReportKind.VALUES
    if tag == protocol.TAG_THRESHOLDS:
        return ReportKind.THRESHOLDS
    return ReportKind.UNRECOGNIZED


def parse_report(line: bytes, capacity: Optional[int] = None) -> Report:
    """Parse one report line into a tagged number sequence.

    Expected format: <tag><sep><int><sep><int>...\\n
    Example: b"v 10 20 30\\n"

    The leading byte decides the destination, not the caller: a thresholds
    line is a thresholds report even if values were requested. Any maximal
    run of ASCII digits is one number; every other byte is a separator.
    Parsing stops at the first LF or at the end of input.

    Args:
        line: Raw line from the pad, LF terminator optional
        capacity: Maximum numbers to store. Numbers beyond it are still
                  counted. None means unbounded.

    Returns:
        Report. Unknown tags and numbers above REPORT_INT_MAX give an
        UNRECOGNIZED report with no numbers.
    """
    if not line:
        return Report.unrecognized()

    kind = report_kind_for_tag(line[0])
    if kind is ReportKind.UNRECOGNIZED:
        logger.debug(f"Unrecognized report tag in line: {line!r}")
        return Report.unrecognized()

    numbers: List[int] = []
    count = 0
    current: Optional[int] = None

    for byte in line[1:]:
        if byte == _NEWLINE:
            break
        if byte in _DIGITS:
            current = (current or 0) * 10 + (byte - 0x30)
            if current > protocol.REPORT_INT_MAX:
                logger.debug(f"Number overflow in report line: {line!r}")
                return Report.unrecognized()
            continue
        if current is not None:
            if capacity is None or len(numbers) < capacity:
                numbers.append(current)
            count += 1
            current = None

    if current is not None:
        if capacity is None or len(numbers) < capacity:
            numbers.append(current)
        count += 1

    return Report(kind, tuple(numbers), count)


def parse_report_strict(line: bytes, capacity: Optional[int] = None) -> Report:
    """Parse a report line, raising instead of returning UNRECOGNIZED.

    Raises:
        ParseFailure: If the tag is unknown or a number overflows
    """
    report = parse_report(line, capacity)
    if not report.is_recognized:
        raise ParseFailure(f"Report line could not be parsed: {line!r}")
    return report

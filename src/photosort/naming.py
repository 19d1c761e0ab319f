# ABOUTME: Naming templates that turn a source file and its timestamp into a target path.
# ABOUTME: Patterns use %-tokens looked up in a token table (%n, %e, %d(...), %p, %t, %s, %%).

import re
from datetime import timezone, tzinfo
from pathlib import Path
from typing import Optional

from photosort.timeindex import data_path, filename_timestamp, from_micros

DEFAULT_FILE_PATTERN = "%t/%n.%e"
DEFAULT_UNDATED_PATTERN = "undated/%n.%e"

_ARG_PATTERN = re.compile(r"\(([^)]*)\)")


def _stem(source: Path, arg, micros, tz) -> str:
    return source.stem


def _extension(source: Path, arg, micros, tz) -> str:
    return source.suffix[1:]


def _date(source: Path, arg, micros, tz) -> str:
    return from_micros(micros, tz).strftime(arg)


def _parent(source: Path, arg, micros, tz) -> str:
    return source.parent.name


def _time_path(source: Path, arg, micros, tz) -> str:
    return data_path(micros, tz).as_posix()


def _stamp(source: Path, arg, micros, tz) -> str:
    return filename_timestamp(from_micros(micros, tz))


def _percent(source: Path, arg, micros, tz) -> str:
    return "%"


# token -> (formatter, takes a parenthesised argument, description)
TOKENS = {
    "n": (_stem, False, "Name of source file (without extension)"),
    "e": (_extension, False, "Extension of source file (eg. jpg, png)"),
    "d": (_date, True, "Date in strftime format (eg. %d(%Y-%m-%d_%H%M%S))"),
    "p": (_parent, False, "Parent directory of source file"),
    "t": (_time_path, False, "Time hierarchy path (YYYY/NN_mon/NN_day/HH/MM)"),
    "s": (_stamp, False, "Filename timestamp (yyyy_MM_dd-HHmm)"),
    "%": (_percent, False, "Percent sign"),
}

_TIME_TOKENS = {"d", "t", "s"}


class NameFormatter:
    """Compiled naming pattern: a list of literal text and token parts."""

    def __init__(self, parts: list[tuple[Optional[str], str]]):
        # Each part is (token, argument) or (None, literal text).
        self.parts = parts

    @classmethod
    def compile(cls, pattern: str) -> "NameFormatter":
        """Parse a naming pattern.

        Raises:
            ValueError: on a trailing '%', an unknown token or a missing argument.
        """
        parts = []
        literal = []
        pos = 0

        while pos < len(pattern):
            ch = pattern[pos]
            if ch != "%":
                literal.append(ch)
                pos += 1
                continue

            if pos + 1 >= len(pattern):
                raise ValueError("Invalid pattern: ends with %")

            token = pattern[pos + 1]
            if token not in TOKENS:
                raise ValueError("Invalid pattern: unknown token %%%s" % token)
            pos += 2

            if literal:
                parts.append((None, "".join(literal)))
                literal = []

            arg = ""
            if TOKENS[token][1]:
                m = _ARG_PATTERN.match(pattern, pos)
                if not m:
                    raise ValueError("Invalid pattern: missing argument for %%%s" % token)
                arg = m.group(1)
                pos = m.end()

            parts.append((token, arg))

        if literal:
            parts.append((None, "".join(literal)))

        return cls(parts)

    @property
    def uses_time(self) -> bool:
        """True if rendering needs a timestamp."""
        return any(token in _TIME_TOKENS for token, _ in self.parts)

    def format(self, source: Path, micros: Optional[int], tz: tzinfo = timezone.utc) -> str:
        """Render the pattern for a source file.

        Date tokens require micros; undated patterns should stick to %n, %e and %p.
        """
        out = []
        for token, text in self.parts:
            if token is None:
                out.append(text)
                continue
            formatter = TOKENS[token][0]
            out.append(formatter(source, text, micros, tz))
        return "".join(out)


def describe_tokens() -> str:
    """Help text listing every naming token."""
    return "\n".join("%%%s  %s" % (token, entry[2]) for token, entry in TOKENS.items())

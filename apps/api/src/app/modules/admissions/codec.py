"""
Admission Number Codec

Pure functions that render a (branch code, academic year, sequence) triple
into a school's configured admission number format, and parse one back.

Formats, shown with separator "-":

    NO_BRANCH             ADM-2025-001
    BRANCH_PREFIX_START   KB-ADM-2025-001
    BRANCH_PREFIX_MIDDLE  ADM-KB-2025-001
    BRANCH_PREFIX_END     ADM-2025-001-KB

The sequence is zero padded to three digits and grows past three digits
without wrapping. Parsing is strict: anything render() could not have
produced is rejected with AdmissionNumberFormatError rather than guessed at.
"""

import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache

ADMISSION_PREFIX = "ADM"
DEFAULT_SEPARATOR = "-"
SEQUENCE_WIDTH = 3

BRANCH_CODE_PATTERN = re.compile(r"[A-Z0-9]+", re.ASCII)

# Exactly three digits, or four and more without a leading zero, so that
# every accepted sequence has exactly one rendering
_SEQUENCE = r"(?P<sequence>\d{3}|[1-9]\d{3,})"
_YEAR = r"(?P<year>\d{4})"
_BRANCH = r"(?P<branch>[A-Z0-9]+)"


class AdmissionFormat(str, Enum):
    """Layout of a school's admission numbers. Fixed at school creation."""

    NO_BRANCH = "NO_BRANCH"
    BRANCH_PREFIX_START = "BRANCH_PREFIX_START"
    BRANCH_PREFIX_MIDDLE = "BRANCH_PREFIX_MIDDLE"
    BRANCH_PREFIX_END = "BRANCH_PREFIX_END"

    @property
    def includes_branch(self) -> bool:
        return self is not AdmissionFormat.NO_BRANCH


class AdmissionNumberFormatError(ValueError):
    """Raised for identifiers or render inputs that do not fit a format."""


@dataclass(frozen=True)
class ParsedAdmissionNumber:
    """Components recovered from an admission number."""

    branch_code: str | None
    academic_year: int
    sequence: int


def validate_separator(separator: str) -> str:
    """Return ``separator`` if usable, else raise AdmissionNumberFormatError."""
    if not separator:
        raise AdmissionNumberFormatError("Separator must not be empty")
    if any(ch.isalnum() for ch in separator) or any(ch.isspace() for ch in separator):
        raise AdmissionNumberFormatError(
            f"Separator {separator!r} must not contain letters, digits, or whitespace"
        )
    return separator


def validate_branch_code(code: str) -> str:
    """Return ``code`` if it is a valid branch code (A-Z, 0-9)."""
    if not code or not BRANCH_CODE_PATTERN.fullmatch(code):
        raise AdmissionNumberFormatError(
            f"Branch code {code!r} must be one or more uppercase letters or digits"
        )
    return code


def _coerce_format(fmt: AdmissionFormat | str) -> AdmissionFormat:
    try:
        return AdmissionFormat(fmt)
    except ValueError as e:
        raise AdmissionNumberFormatError(f"Unknown admission format: {fmt!r}") from e


def render(
    fmt: AdmissionFormat | str,
    separator: str,
    branch_code: str | None,
    year: int,
    sequence: int,
) -> str:
    """
    Render an admission number.

    Args:
        fmt: School's admission format
        separator: School's branch separator
        branch_code: Branch code; required unless fmt is NO_BRANCH, ignored if it is
        year: Four digit academic year
        sequence: Positive sequence number

    Raises:
        AdmissionNumberFormatError: Invalid format, separator, branch code,
            year, or sequence
    """
    fmt = _coerce_format(fmt)
    sep = validate_separator(separator)
    if isinstance(year, bool) or not isinstance(year, int) or not 1000 <= year <= 9999:
        raise AdmissionNumberFormatError(f"Academic year {year!r} must be a four digit year")
    if isinstance(sequence, bool) or not isinstance(sequence, int) or sequence < 1:
        raise AdmissionNumberFormatError(f"Sequence {sequence!r} must be a positive integer")

    padded = str(sequence).zfill(SEQUENCE_WIDTH)

    if fmt is AdmissionFormat.NO_BRANCH:
        parts = [ADMISSION_PREFIX, str(year), padded]
    else:
        if branch_code is None:
            raise AdmissionNumberFormatError(f"Format {fmt.value} requires a branch code")
        code = validate_branch_code(branch_code)
        if fmt is AdmissionFormat.BRANCH_PREFIX_START:
            parts = [code, ADMISSION_PREFIX, str(year), padded]
        elif fmt is AdmissionFormat.BRANCH_PREFIX_MIDDLE:
            parts = [ADMISSION_PREFIX, code, str(year), padded]
        else:
            parts = [ADMISSION_PREFIX, str(year), padded, code]

    return sep.join(parts)


@lru_cache(maxsize=64)
def _pattern(fmt: AdmissionFormat, separator: str) -> re.Pattern:
    sep = re.escape(separator)
    if fmt is AdmissionFormat.NO_BRANCH:
        parts = [ADMISSION_PREFIX, _YEAR, _SEQUENCE]
    elif fmt is AdmissionFormat.BRANCH_PREFIX_START:
        parts = [_BRANCH, ADMISSION_PREFIX, _YEAR, _SEQUENCE]
    elif fmt is AdmissionFormat.BRANCH_PREFIX_MIDDLE:
        parts = [ADMISSION_PREFIX, _BRANCH, _YEAR, _SEQUENCE]
    else:
        parts = [ADMISSION_PREFIX, _YEAR, _SEQUENCE, _BRANCH]
    return re.compile(sep.join(parts), re.ASCII)


def parse(
    identifier: str,
    fmt: AdmissionFormat | str,
    separator: str = DEFAULT_SEPARATOR,
) -> ParsedAdmissionNumber:
    """
    Parse an admission number into its components.

    Raises:
        AdmissionNumberFormatError: The identifier does not match the format
    """
    fmt = _coerce_format(fmt)
    sep = validate_separator(separator)
    if not isinstance(identifier, str):
        raise AdmissionNumberFormatError(
            f"Admission number must be a string, got {type(identifier).__name__}"
        )

    match = _pattern(fmt, sep).fullmatch(identifier)
    if match is None:
        raise AdmissionNumberFormatError(
            f"{identifier!r} is not a valid {fmt.value} admission number (separator {sep!r})"
        )

    sequence = int(match.group("sequence"))
    if sequence < 1:
        raise AdmissionNumberFormatError(f"{identifier!r} carries a zero sequence number")

    year = int(match.group("year"))
    if year < 1000:
        raise AdmissionNumberFormatError(f"{identifier!r} carries an invalid academic year")

    return ParsedAdmissionNumber(
        branch_code=match.group("branch") if fmt.includes_branch else None,
        academic_year=year,
        sequence=sequence,
    )


def parse_sequence(
    identifier: str,
    fmt: AdmissionFormat | str = AdmissionFormat.BRANCH_PREFIX_START,
    separator: str = DEFAULT_SEPARATOR,
) -> int:
    """Extract the sequence number from an admission number."""
    return parse(identifier, fmt, separator).sequence


def parse_year(
    identifier: str,
    fmt: AdmissionFormat | str = AdmissionFormat.BRANCH_PREFIX_START,
    separator: str = DEFAULT_SEPARATOR,
) -> int:
    """Extract the academic year from an admission number."""
    return parse(identifier, fmt, separator).academic_year


def parse_branch_code(
    identifier: str,
    fmt: AdmissionFormat | str = AdmissionFormat.BRANCH_PREFIX_START,
    separator: str = DEFAULT_SEPARATOR,
) -> str | None:
    """
    Extract the branch code from an admission number.

    Returns None for NO_BRANCH, after checking the identifier is well formed.
    """
    return parse(identifier, fmt, separator).branch_code


def validate_format(identifier: str, expected_year: int, separator: str = DEFAULT_SEPARATOR) -> bool:
    """
    Lightweight legacy check: does ``identifier`` have the NO_BRANCH shape
    for ``expected_year``?
    """
    try:
        parsed = parse(identifier, AdmissionFormat.NO_BRANCH, separator)
    except AdmissionNumberFormatError:
        return False
    return parsed.academic_year == expected_year


__all__ = [
    "AdmissionFormat",
    "AdmissionNumberFormatError",
    "ParsedAdmissionNumber",
    "render",
    "parse",
    "parse_sequence",
    "parse_year",
    "parse_branch_code",
    "validate_format",
    "validate_separator",
    "validate_branch_code",
]

"""
Field type inference for learned layouts.

Types are advisory: they steer value coercion at apply time and are never
enforced while learning.
"""

import re
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

FIELD_TYPES = ("string", "number", "enum", "bool", "date")

BOOLEAN_VALUES: Dict[str, bool] = {
    # English
    "true": True, "false": False, "yes": True, "no": False,
    "y": True, "n": False, "1": True, "0": False,
    "on": True, "off": False,
    # Korean
    "참": True, "거짓": False, "예": True, "아니오": False,
    # Japanese
    "はい": True, "いいえ": False,
}

# Only unambiguous words count when inferring from a single sample
_INFERRED_BOOLEAN_WORDS = frozenset({"true", "false", "yes", "no"})

DATE_PATTERNS: List[Tuple[str, Optional[str], str]] = [
    # ISO formats
    (r"^\d{4}-\d{1,2}-\d{1,2}$", "%Y-%m-%d", "YYYY-MM-DD"),
    (r"^\d{4}/\d{1,2}/\d{1,2}$", "%Y/%m/%d", "YYYY/MM/DD"),
    (r"^\d{4}-\d{2}-\d{2}[ T]\d{2}:\d{2}(:\d{2})?$", None, "YYYY-MM-DD HH:MM"),
    # US formats
    (r"^\d{2}/\d{2}/\d{4}$", "%m/%d/%Y", "MM/DD/YYYY"),
    (r"^\d{2}-\d{2}-\d{4}$", "%m-%d-%Y", "MM-DD-YYYY"),
    # European formats
    (r"^\d{2}\.\d{2}\.\d{4}$", "%d.%m.%Y", "DD.MM.YYYY"),
    # Korean format
    (r"^\d{4}년\s*\d{1,2}월\s*\d{1,2}일$", None, "YYYY년 MM월 DD일"),
]

# Number with an optional trailing unit: "12", "-3.5", "1,200", "40 kg", "75%", "20 °C"
NUMBER_PATTERN = re.compile(r"^[+-]?(?:\d{1,3}(?:,\d{3})+|\d+)(?:[.,]\d+)?(?:\s*[A-Za-z%/.°-]+)?$")
PLAIN_NUMBER_PATTERN = re.compile(r"^[+-]?(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?$")

# Inline choice list: "AC/DC", "Low, Medium, High"; every option carries a
# letter, so ratios like "12/24" stay strings
_ENUM_OPTION = r"(?=\d*[A-Za-z])[A-Za-z0-9]{2,10}"
ENUM_LIST_PATTERN = re.compile(rf"^{_ENUM_OPTION}(?:\s*[,/]\s*{_ENUM_OPTION}){{1,6}}$")

MAX_REPEATED_ENUM_OPTIONS = 5


def parse_boolean(text: str) -> Optional[bool]:
    return BOOLEAN_VALUES.get(text.strip().lower())


def parse_date(text: str) -> Optional[str]:
    """Return an ISO date string when ``text`` matches a known date layout."""
    value = text.strip()
    for pattern_regex, format_str, _ in DATE_PATTERNS:
        if not re.match(pattern_regex, value):
            continue
        if format_str is None:
            return value
        try:
            return datetime.strptime(value, format_str).date().isoformat()
        except ValueError:
            continue
    return None


def parse_number(text: str, *, lossless: bool = False):
    """
    Return int/float for a plain numeric string (thousands separators allowed).

    With ``lossless`` only strings that read back the same once converted are
    parsed: "0012", "+5" and "3.50" return None.
    """
    value = text.strip()
    if not PLAIN_NUMBER_PATTERN.match(value):
        return None
    digits = value.replace(",", "")
    number = int(digits) if "." not in digits else float(digits)
    if lossless and repr(number) != digits:
        return None
    return number


def split_enum_options(text: str) -> List[str]:
    return [part.strip() for part in re.split(r"[,/]", text) if part.strip()]


def infer_field_type(sample: Optional[str]) -> Tuple[str, Optional[List[str]]]:
    """
    Infer a field type from one sampled value.

    Order: bool, date, number, inline choice list (enum), string.
    """
    if sample is None:
        return "string", None
    text = str(sample).strip()
    if not text:
        return "string", None

    if text.lower() in _INFERRED_BOOLEAN_WORDS:
        return "bool", None
    if parse_date(text) is not None:
        return "date", None
    if NUMBER_PATTERN.match(text):
        return "number", None
    if ENUM_LIST_PATTERN.match(text):
        return "enum", split_enum_options(text)
    return "string", None


def infer_repeated_enum(samples: Sequence[Optional[str]]) -> Optional[List[str]]:
    """
    Detect a small closed set of repeated values across fields sharing a label.

    Returns the distinct values (first-seen order) or None.
    """
    values = [str(s).strip() for s in samples if s is not None and str(s).strip()]
    if len(values) < 2 or len(values) != len(samples):
        return None
    if any(infer_field_type(v)[0] != "string" for v in values):
        return None

    distinct: List[str] = []
    for v in values:
        if v not in distinct:
            distinct.append(v)
    if len(distinct) >= len(values) or len(distinct) > MAX_REPEATED_ENUM_OPTIONS:
        return None
    return distinct

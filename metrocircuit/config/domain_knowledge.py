"""Static domain vocabulary for electrical distribution drawings.

Everything here is pure data plus a few compiled regexes, built once at import
time.  The segmenter, the local tag extractor, the router and the answer
drafter all read from this module so the vocabulary stays in one place.
"""

from __future__ import annotations

import re

# ═════════════════════════════════════════════════════════════════════════
# 1. SECTION MARKERS
# ═════════════════════════════════════════════════════════════════════════
# Line-leading keywords that start a new logical section on a drawing or
# schedule page.  Multi-word markers come first so the alternation prefers
# the longest match.

SECTION_MARKERS: tuple[str, ...] = (
    "SINGLE LINE DIAGRAM",
    "CABLE SCHEDULE",
    "PANEL SCHEDULE",
    "LOAD SCHEDULE",
    "GENERAL NOTES",
    "DRAWING NO",
    "SLD",
    "PANEL",
    "FEEDER",
    "INCOMER",
    "OUTGOING",
    "BUSBAR",
    "BUS COUPLER",
    "TRANSFORMER",
    "SWITCHBOARD",
    "DISTRIBUTION BOARD",
    "LEGEND",
    "NOTES",
    "REVISION",
    "TITLE",
    "SECTION",
)

SECTION_MARKER_RE = re.compile(
    r"^(?=[ \t]*(?:" + "|".join(re.escape(m) for m in SECTION_MARKERS) + r")\b)",
    re.IGNORECASE | re.MULTILINE,
)


# ═════════════════════════════════════════════════════════════════════════
# 2. PAGE AND HEADING PATTERNS
# ═════════════════════════════════════════════════════════════════════════

# Form feeds (PDF page joins), "--- Page 3 ---", "[Page 3]", "Page 3 of 12".
PAGE_MARKER_RE = re.compile(
    r"\f|^[ \t]*(?:-{2,}\s*page\s+\d+\s*-{2,}|\[page\s+\d+\]|page\s+\d+\s+of\s+\d+)[ \t]*$",
    re.IGNORECASE | re.MULTILINE,
)

# "1 SCOPE", "2.3 Protection settings", "10. Earthing"
NUMBERED_HEADING_RE = re.compile(r"^(?=[ \t]*\d{1,2}(?:\.\d{1,2})*\.?[ \t]+[A-Z])", re.MULTILINE)


# ═════════════════════════════════════════════════════════════════════════
# 3. COMPONENT VOCABULARY
# ═════════════════════════════════════════════════════════════════════════
# Hierarchy level per component family, top of the distribution tree first.
# Used to order schematic components built from chunk tags.

COMPONENT_HIERARCHY: dict[str, int] = {
    "TRANSFORMER": 0,
    "BUSBAR": 0,
    "RMU": 0,
    "ACB": 1,
    "VCB": 1,
    "ISOLATOR": 1,
    "MCCB": 2,
    "MCB": 2,
    "RCCB": 2,
    "ELCB": 2,
    "FUSE": 2,
    "SPD": 2,
    "RELAY": 3,
    "CONTACTOR": 3,
    "PLC": 3,
    "STARTER": 3,
    "VFD": 3,
    "UPS": 3,
    "MOTOR": 4,
    "CAPACITOR": 4,
    "CABLE": 4,
    "CT": 4,
    "PT": 4,
    "VT": 4,
    "METER": 4,
    "BATTERY": 4,
    "CHARGER": 4,
    "RECTIFIER": 4,
    "INVERTER": 4,
    "EARTHING": 4,
}

DEFAULT_HIERARCHY_LEVEL = 2

COMPONENT_TOKENS: tuple[str, ...] = tuple(COMPONENT_HIERARCHY)

COMPONENT_TOKEN_RE = re.compile(
    r"\b(" + "|".join(sorted(COMPONENT_TOKENS, key=len, reverse=True)) + r")S?\b",
    re.IGNORECASE,
)

# Short uppercase designators: Q1, TR-2, CB101, F12A, MCC-3.
IDENTIFIER_RE = re.compile(r"\b[A-Z]{1,4}-?\d{1,4}[A-Z]?\b")

# "LT PANEL-2", "MCC PANEL A", "Panel: DB-04"
PANEL_RE = re.compile(
    r"\b((?:LT|HT|MV|LV|PCC|MCC|MDB|SMDB|APFC|UPS|AUX)[ \t]*-?[ \t]*PANEL(?:[ \t]*-?[ \t]*[A-Z0-9]{1,4})?)\b"
    r"|\bPANEL[ \t]*[:\-][ \t]*([A-Z0-9][A-Z0-9-]{0,11})",
    re.IGNORECASE,
)

# "415V", "11 kV", "110 V DC", "33KV"
VOLTAGE_RE = re.compile(r"\b(\d{2,3}(?:\.\d)?)[ \t]*(kV|V)(?:[ \t]*(AC|DC))?\b", re.IGNORECASE)

# "TR-1 -> BUSBAR A", "ACB1 → MCCB3"
CONNECTION_RE = re.compile(r"([A-Za-z0-9][\w./-]{0,30})[ \t]*(?:->|→|=>)[ \t]*([A-Za-z0-9][\w./-]{0,30})")


def hierarchy_level(component: str) -> int:
    """Return the distribution hierarchy level for a component label."""
    upper = component.upper()
    for token, level in COMPONENT_HIERARCHY.items():
        if token in upper:
            return level
    return DEFAULT_HIERARCHY_LEVEL


def normalize_voltage(value: str, unit: str, current: str | None = None) -> str:
    """Render a voltage match as e.g. ``415V``, ``11kV`` or ``110V DC``."""
    unit_norm = "kV" if unit.lower() == "kv" else "V"
    text = f"{value}{unit_norm}"
    if current:
        text += f" {current.upper()}"
    return text


# ═════════════════════════════════════════════════════════════════════════
# 4. QUERY VOCABULARY
# ═════════════════════════════════════════════════════════════════════════

QUERY_STOPWORDS: frozenset[str] = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "by", "can", "do", "does",
        "for", "from", "give", "how", "in", "is", "it", "list", "me", "of",
        "on", "or", "show", "tell", "that", "the", "this", "to", "what",
        "when", "where", "which", "who", "why", "with", "all", "about",
    }
)

"""Reading `flutter doctor` output.

Only the section status markers are interpreted:

    [✓] Flutter (Channel stable, 3.24.3, ...)
    [!] Android toolchain - develop for Android devices
    [✗] Chrome - develop for the web

Windows consoles without unicode print `[√]` and `[X]` instead. Everything
else in the output (detail lines, hints, links) is ignored.
"""

from __future__ import annotations

import re
from typing import Dict, Optional

OK = "ok"
PARTIAL = "partial"
MISSING = "missing"

_MARKERS = {
    "✓": OK,
    "√": OK,
    "!": PARTIAL,
    "✗": MISSING,
    "X": MISSING,
    "x": MISSING,
}

_SECTION = re.compile(r"^\[(?P<mark>[^\]]{1,2})\]\s+(?P<title>.+?)\s*$")


def parse_sections(output: str) -> Dict[str, str]:
    """Map each top-level doctor section title to ok/partial/missing."""

    sections: Dict[str, str] = {}
    for line in output.splitlines():
        m = _SECTION.match(line.strip())
        if not m:
            continue
        status = _MARKERS.get(m.group("mark").strip())
        if status is None:
            continue
        title = re.split(r"\s+[-(]", m.group("title"), maxsplit=1)[0].strip()
        sections[title] = status
    return sections


def doctor_passed(output: str, section: Optional[str] = None) -> bool:
    """True unless doctor flagged a failure.

    With `section`, only that section counts and it must be present and fully
    ok. Without it, any section marked missing counts as a failure; partial
    sections are tolerated.
    """

    sections = parse_sections(output)
    if section is not None:
        return sections.get(section) == OK
    return bool(sections) and MISSING not in sections.values()

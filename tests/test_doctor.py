"""
Tests for `flutter doctor` output interpretation.
"""

from __future__ import annotations

from mobiledev_setup.lib.doctor import MISSING, OK, PARTIAL, doctor_passed, parse_sections

DOCTOR_OK = """\
[✓] Flutter (Channel stable, 3.24.3, on Linux, locale en_US.UTF-8)
[✓] Android toolchain - develop for Android devices (Android SDK version 34.0.0)
[✓] Connected device (1 available)

• No issues found!
"""

PARTIAL_OUTPUT = """\
Doctor summary (to see all details, run flutter doctor -v):
[✓] Flutter (Channel stable, 3.24.3, on Ubuntu 22.04.4 LTS 6.5.0-35-generic, locale en_US.UTF-8)
[!] Android toolchain - develop for Android devices (Android SDK version 34.0.0)
    ! Some Android licenses not accepted. To resolve this, run: flutter doctor --android-licenses
[✗] Chrome - develop for the web (Cannot find Chrome executable at google-chrome)
    ! Cannot find Chrome. Try setting CHROME_EXECUTABLE to a Chrome executable.
[✓] Linux toolchain - develop for Linux desktop
[!] Android Studio (not installed)
[✓] Connected device (1 available)

! Doctor found issues in 3 categories.
"""

WINDOWS_OUTPUT = """\
[√] Flutter (Channel stable, 3.24.3, on Microsoft Windows [Version 10.0.22631.3880], locale en-US)
[X] Android toolchain - develop for Android devices
    X Unable to locate Android SDK.
[√] Network resources
"""


def test_parse_sections_titles_and_status():
    sections = parse_sections(PARTIAL_OUTPUT)
    assert sections["Flutter"] == OK
    assert sections["Android toolchain"] == PARTIAL
    assert sections["Chrome"] == MISSING
    assert sections["Linux toolchain"] == OK
    assert sections["Android Studio"] == PARTIAL
    assert sections["Connected device"] == OK
    # Indented detail lines are not sections.
    assert len(sections) == 6


def test_parse_sections_windows_markers():
    sections = parse_sections(WINDOWS_OUTPUT)
    assert sections == {"Flutter": OK, "Android toolchain": MISSING, "Network resources": OK}


def test_doctor_passed_overall():
    assert doctor_passed(DOCTOR_OK)
    assert not doctor_passed(PARTIAL_OUTPUT)
    assert not doctor_passed("")
    assert not doctor_passed("flutter: command not found")


def test_partial_sections_are_tolerated_overall():
    out = "[✓] Flutter (Channel stable)\n[!] Android Studio (not installed)\n"
    assert doctor_passed(out)


def test_doctor_passed_for_section():
    assert doctor_passed(DOCTOR_OK, "Android toolchain")
    assert not doctor_passed(PARTIAL_OUTPUT, "Android toolchain")
    assert doctor_passed(PARTIAL_OUTPUT, "Linux toolchain")
    assert not doctor_passed(WINDOWS_OUTPUT, "Android toolchain")
    assert not doctor_passed(DOCTOR_OK, "Xcode")

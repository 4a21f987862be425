"""Tests for name extraction and device-name classification."""

from __future__ import annotations

import pytest

from timekeeper.device_names import (
    DeviceNameClass,
    classify_device_name,
    device_label,
    iter_device_names,
)
from timekeeper.models import SubjectRecord
from timekeeper.names import extract_email, extract_name


def _name(raw):
    found = extract_name(SubjectRecord.from_mapping(raw))
    return found[0] if found else None


class TestExtractName:
    def test_email_prefix_after_rejected_candidates(self):
        raw = {"name": "", "displayName": "unknown", "email": "jdoe@x.com"}
        assert extract_name(SubjectRecord.from_mapping(raw)) == ("jdoe", "email")

    def test_plain_name(self):
        assert _name({"name": "Levi Daniels"}) == "Levi Daniels"

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ({"name": "  Ann  ", "displayName": "Other"}, "Ann"),
            ({"displayName": "Disp", "fullName": "Full"}, "Disp"),
            ({"fullName": "Full", "username": "usr"}, "Full"),
            ({"username": "usr", "firstName": "Jo"}, "usr"),
            ({"firstName": "Jo", "lastName": "Smith"}, "Jo Smith"),
            ({"firstName": "Jo"}, "Jo"),
            ({"lastName": "Smith"}, "Smith"),
            ({"name": "NULL", "username": "Undefined", "lastName": "Smith"}, "Smith"),
        ],
    )
    def test_priority_order(self, raw, expected):
        assert _name(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            "Levi",
            [],
            {},
            {"name": 42, "email": ["a@b.c"]},
            {"name": "   ", "displayName": "Unknown", "email": "@x.com"},
        ],
    )
    def test_nothing_usable(self, raw):
        assert _name(raw) is None

    def test_data_envelope_unwrapped(self):
        assert _name({"data": {"id": 7, "fullName": "Ann Lee"}}) == "Ann Lee"
        assert SubjectRecord.from_mapping({"data": {"id": 7}}).id == "7"

    def test_extract_email_requires_at_sign(self):
        assert extract_email(SubjectRecord(email="jdoe@x.com")) == "jdoe@x.com"
        assert extract_email(SubjectRecord(email="jdoe")) is None
        assert extract_email(SubjectRecord()) is None


class TestDeviceNames:
    @pytest.mark.parametrize(
        "name",
        [
            "Macbooks-MacBook-Air.local",
            "DESKTOP-4F7K2QX",
            "LAPTOP-88",
            "Johns-Workstation",
            "Maries-iMac",
            "WS001",
            "build.corp.example",
            "MyComputer",
        ],
    )
    def test_real_names(self, name):
        assert classify_device_name(name) is DeviceNameClass.REAL_NAME

    @pytest.mark.parametrize(
        "name",
        ["Computer-TthUmwrm", "User123", "Device456", "Unknown Device", "unknown-host.local"],
    )
    def test_synthetic_patterns(self, name):
        assert classify_device_name(name) is DeviceNameClass.SYNTHETIC_PATTERN

    @pytest.mark.parametrize("name", ["", "ab", "pc", "box", "server", None, 123])
    def test_unknown(self, name):
        assert classify_device_name(name) is DeviceNameClass.UNKNOWN

    def test_device_label_strips_domain(self):
        assert device_label("Levis-MacBook-Air.local") == "Levis-MacBook-Air"
        assert device_label("DESKTOP-4F7K2QX") == "DESKTOP-4F7K2QX"

    def test_iter_device_names_flat_and_nested(self):
        raw = {
            "computerName": " Levis-MacBook-Air.local ",
            "hostname": "Levis-MacBook-Air.local",
            "device": {"name": "DESKTOP-4F7K2QX"},
            "systemInfo": {"hostname": ""},
            "machineName": 5,
        }
        assert list(iter_device_names(raw)) == ["Levis-MacBook-Air.local", "DESKTOP-4F7K2QX"]

"""Pytest configuration and shared fixtures."""

import os
import struct

import piexif
import pytest


def to_dms(value: float, precision: int = 10000) -> tuple:
    """Encode decimal degrees as an EXIF rational triple (sign dropped)."""
    value = abs(value)
    degrees = int(value)
    minutes_float = (value - degrees) * 60
    minutes = int(minutes_float)
    seconds = round((minutes_float - minutes) * 60 * precision)
    return ((degrees, 1), (minutes, 1), (seconds, precision))


def wrap_jpeg(exif_bytes: bytes) -> bytes:
    """Minimal JPEG: SOI, APP1 with the Exif blob, an empty scan, EOI."""
    app1 = b"\xff\xe1" + struct.pack(">H", len(exif_bytes) + 2) + exif_bytes
    return b"\xff\xd8" + app1 + b"\xff\xda\x00\x02" + b"\x00" + b"\xff\xd9"


def build_exif(gps: dict, zeroth: dict | None = None) -> bytes:
    return piexif.dump({
        "0th": zeroth if zeroth is not None else {piexif.ImageIFD.Make: b"TestCam"},
        "Exif": {},
        "GPS": gps,
        "1st": {},
        "thumbnail": None,
    })


def forge_entry(data: bytes, tag: int, value_type: int, count: int | None = None,
                value: int | None = None) -> bytes:
    """Rewrite the count and/or value field of a big-endian IFD entry in ``data``."""
    data = bytearray(data)
    start = data.index(b"Exif\x00\x00")
    entry = data.index(struct.pack(">HH", tag, value_type), start)
    if count is not None:
        data[entry + 4:entry + 8] = struct.pack(">L", count)
    if value is not None:
        data[entry + 8:entry + 12] = struct.pack(">L", value)
    return bytes(data)


@pytest.fixture
def gps_jpeg():
    """Factory: JPEG bytes carrying the given GPS IFD entries."""
    def _make(
        latitude=((52, 1), (30, 1), (0, 1)),
        longitude=((13, 1), (24, 1), (0, 1)),
        lat_ref: bytes | None = b"N",
        lon_ref: bytes | None = b"E",
    ) -> bytes:
        gps = {}
        if latitude is not None:
            gps[piexif.GPSIFD.GPSLatitude] = latitude
        if longitude is not None:
            gps[piexif.GPSIFD.GPSLongitude] = longitude
        if lat_ref is not None:
            gps[piexif.GPSIFD.GPSLatitudeRef] = lat_ref
        if lon_ref is not None:
            gps[piexif.GPSIFD.GPSLongitudeRef] = lon_ref
        return wrap_jpeg(build_exif(gps))
    return _make


@pytest.fixture
def plain_jpeg() -> bytes:
    """JPEG with EXIF camera data but no GPS block."""
    return wrap_jpeg(build_exif({}))


@pytest.fixture
def dms():
    return to_dms


@pytest.fixture
def forge():
    return forge_entry


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep a local botconfig.toml, .env or BOT_* variables out of every test."""
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("BOT_"):
            monkeypatch.delenv(key)
    return tmp_path

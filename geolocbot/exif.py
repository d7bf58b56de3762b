"""EXIF GPS extraction: turn the GPS IFD of an image into signed decimal degrees.

Only the metadata container is parsed; pixel data is never decoded.
"""

import logging
import struct
from dataclasses import dataclass
from typing import Any, Optional

import piexif

logger = logging.getLogger("geolocbot.exif")

# Signatures piexif knows how to read without touching the filesystem
_JPEG_MAGIC = b"\xff\xd8"
_TIFF_MAGICS = (b"II", b"MM")
_EXIF_MAGIC = b"Exif"

# Byte width of one value of each TIFF field type piexif decodes
_TYPE_SIZES = {
    piexif.TYPES.Byte: 1,
    piexif.TYPES.Ascii: 1,
    piexif.TYPES.Short: 2,
    piexif.TYPES.Long: 4,
    piexif.TYPES.Rational: 8,
    piexif.TYPES.SByte: 1,
    piexif.TYPES.Undefined: 1,
    piexif.TYPES.SShort: 2,
    piexif.TYPES.SLong: 4,
    piexif.TYPES.SRational: 8,
    piexif.TYPES.Float: 4,
    piexif.TYPES.DFloat: 8,
}
# Always stored behind an offset, whatever the count
_POINTER_TYPES = (piexif.TYPES.Rational, piexif.TYPES.SRational, piexif.TYPES.DFloat)
# Single values piexif hands back as plain ints
_INT_FORMATS = {
    piexif.TYPES.Byte: "B",
    piexif.TYPES.SByte: "b",
    piexif.TYPES.Short: "H",
    piexif.TYPES.SShort: "h",
    piexif.TYPES.Long: "L",
    piexif.TYPES.SLong: "l",
}
_SUB_IFD_TAGS = (
    piexif.ImageIFD.ExifTag,
    piexif.ImageIFD.GPSTag,
    piexif.ExifIFD.InteroperabilityTag,
)

_DEFAULT_REFS = {
    piexif.GPSIFD.GPSLatitudeRef: "N",
    piexif.GPSIFD.GPSLongitudeRef: "E",
}


class DecodeError(Exception):
    """Base class for 'this image carries no usable location'."""
    pass

class UnreadableError(DecodeError):
    """Not an EXIF container, or the container is malformed."""
    pass

class NotFoundError(DecodeError):
    """The container has no GPS latitude/longitude."""
    pass

class InvalidFormatError(DecodeError):
    """A GPS coordinate is not a triple of rationals."""
    pass


@dataclass(frozen=True)
class GeoCoordinate:
    """A WGS84 position in decimal degrees. The sign carries the hemisphere."""

    latitude: float
    longitude: float

    @property
    def geo_uri(self) -> str:
        """RFC 5870 ``geo:`` URI, as used by ``m.location`` messages."""
        return f"geo:{self.latitude},{self.longitude}"


def _has_container_magic(data: bytes) -> bool:
    head = bytes(data[:12])
    if head.startswith(_JPEG_MAGIC) or head.startswith(_EXIF_MAGIC):
        return True
    if head[:2] in _TIFF_MAGICS:
        return True
    return head[:4] == b"RIFF" and head[8:12] == b"WEBP"


def _tiff_block(data: bytes) -> Optional[bytes]:
    """Locate the TIFF structure piexif will parse. None when there is none."""
    if data.startswith(_JPEG_MAGIC):
        head = 2
        while head + 4 <= len(data) and data[head:head + 2] != b"\xff\xda":
            length = struct.unpack(">H", data[head + 2:head + 4])[0]
            segment = data[head:head + length + 2]
            if segment[:2] == b"\xff\xe1" and segment[4:10] == b"Exif\x00\x00":
                return segment[10:]
            head += length + 2
        return None
    if data.startswith(_EXIF_MAGIC):
        return data[6:]
    if data[:2] in _TIFF_MAGICS:
        return data

    # WebP: RIFF chunks follow the 12-byte file header
    pos = 12
    while pos + 8 <= len(data):
        fourcc = data[pos:pos + 4]
        size = struct.unpack("<L", data[pos + 4:pos + 8])[0]
        if fourcc == b"EXIF":
            return data[pos + 8:pos + 8 + size]
        pos += 8 + size + (size & 1)
    return None


def _unpack(tiff: bytes, fmt: str, offset: int) -> int:
    end = offset + struct.calcsize(fmt)
    if offset < 0 or end > len(tiff):
        raise UnreadableError(f"EXIF offset {offset} points past the end of the data")
    return struct.unpack(fmt, tiff[offset:end])[0]


def _check_ifd(tiff: bytes, endian: str, offset: int, group: str) -> tuple[dict, int]:
    """Bounds-check the known entries of one IFD.

    Returns:
        (sub-IFD pointers found in the IFD, offset of the next-IFD link)
    """
    count = _unpack(tiff, endian + "H", offset)
    entries = offset + 2
    if entries + 12 * count > len(tiff):
        raise UnreadableError(f"{group} IFD runs past the end of the data")

    known = piexif.TAGS[group]
    pointers = {}
    for i in range(count):
        entry = entries + 12 * i
        tag, value_type, value_count = struct.unpack(endian + "HHL", tiff[entry:entry + 8])
        if tag not in known or value_type not in _TYPE_SIZES:
            continue

        length = value_count * _TYPE_SIZES[value_type]
        if length > 4 or value_type in _POINTER_TYPES:
            pointer = _unpack(tiff, endian + "L", entry + 8)
            if length > len(tiff) - pointer:
                raise UnreadableError(
                    f"{group} tag {tag} claims {value_count} values, more than the data holds"
                )
        elif tag in _SUB_IFD_TAGS and value_count == 1 and value_type in _INT_FORMATS:
            pointers[tag] = _unpack(tiff, endian + _INT_FORMATS[value_type], entry + 8)
    return pointers, entries + 12 * count


def _check_bounds(tiff: bytes):
    """Reject IFD entries whose values would reach past the end of ``tiff``.

    piexif sizes its struct formats from the entry's value count, so a forged
    count costs memory proportional to the count, not to the input.
    """
    endian = "<" if tiff[:2] == b"II" else ">"
    zeroth = _unpack(tiff, endian + "L", 4)

    pointers, link = _check_ifd(tiff, endian, zeroth, "0th")
    if piexif.ImageIFD.ExifTag in pointers:
        exif_pointers, _ = _check_ifd(tiff, endian, pointers[piexif.ImageIFD.ExifTag], "Exif")
        if piexif.ExifIFD.InteroperabilityTag in exif_pointers:
            _check_ifd(tiff, endian, exif_pointers[piexif.ExifIFD.InteroperabilityTag], "Interop")
    if piexif.ImageIFD.GPSTag in pointers:
        _check_ifd(tiff, endian, pointers[piexif.ImageIFD.GPSTag], "GPS")
    if tiff[link:link + 4] != b"\x00\x00\x00\x00":
        _check_ifd(tiff, endian, _unpack(tiff, endian + "L", link), "1st")


def _load_exif(data: bytes) -> dict:
    """Parse the EXIF container in ``data``.

    Raises:
        UnreadableError: unknown signature, malformed container, IFD entries
            reaching past the end of the data, or no EXIF segment.
    """
    # piexif treats anything without a known signature as a file path
    if not data or not _has_container_magic(data):
        raise UnreadableError("Not a JPEG, TIFF, WebP or Exif container")

    data = bytes(data)
    tiff = _tiff_block(data)
    if tiff is not None:
        _check_bounds(tiff)

    try:
        exif = piexif.load(data)
    except Exception as e:
        raise UnreadableError(f"Malformed EXIF container: {type(e).__name__}: {e}") from e

    if not any(exif.get(ifd) for ifd in ("0th", "Exif", "GPS", "Interop", "1st")):
        raise UnreadableError("Container has no EXIF segment")
    return exif


def _is_rational(value: Any) -> bool:
    return (
        isinstance(value, (tuple, list))
        and len(value) == 2
        and all(isinstance(v, int) and not isinstance(v, bool) for v in value)
    )


def dms_to_degrees(value: Any, name: str = "coordinate") -> float:
    """Convert an EXIF (degrees, minutes, seconds) rational triple to decimal degrees.

    Args:
        value: Rational triple as returned by piexif, e.g. ``((52, 1), (30, 1), (0, 1))``
        name: Tag name used in error messages

    Returns:
        ``deg + min / 60 + sec / 3600`` (unsigned, unclamped)

    Raises:
        InvalidFormatError: value is not a sequence of exactly three rationals
    """
    # piexif flattens a single rational to a bare (num, den) pair
    if _is_rational(value):
        value = (value,)

    if not isinstance(value, (tuple, list)) or not all(_is_rational(v) for v in value):
        raise InvalidFormatError(f"{name} is not a rational value")
    if len(value) != 3:
        raise InvalidFormatError(f"{name} has {len(value)} components, expected 3")
    if any(den == 0 for _, den in value):
        raise InvalidFormatError(f"{name} has a zero denominator")

    degrees, minutes, seconds = (num / den for num, den in value)
    return degrees + minutes / 60.0 + seconds / 3600.0


def _read_ref(gps: dict, tag: int) -> str:
    """Hemisphere reference for ``tag``, falling back to N (latitude) / E (longitude)."""
    raw: Optional[Any] = gps.get(tag)
    if isinstance(raw, bytes):
        raw = raw.decode("ascii", errors="ignore")
    if isinstance(raw, str):
        ref = raw.strip("\x00 ").upper()
        if ref:
            return ref[0]
    return _DEFAULT_REFS[tag]


def _read_coordinate(gps: dict, tag: int, name: str) -> float:
    if tag not in gps:
        raise NotFoundError(f"{name} not in EXIF data")
    return dms_to_degrees(gps[tag], name)


def extract_location(data: bytes) -> GeoCoordinate:
    """Extract the GPS position stored in an image's EXIF metadata.

    Args:
        data: Raw image (or bare EXIF) bytes

    Returns:
        GeoCoordinate with hemisphere applied to the sign

    Raises:
        UnreadableError: the bytes are not a readable EXIF container
        NotFoundError: GPSLatitude or GPSLongitude is missing
        InvalidFormatError: a coordinate is not a rational triple
    """
    exif = _load_exif(data)
    gps = exif.get("GPS") or {}

    longitude = _read_coordinate(gps, piexif.GPSIFD.GPSLongitude, "GPSLongitude")
    latitude = _read_coordinate(gps, piexif.GPSIFD.GPSLatitude, "GPSLatitude")
    lat_ref = _read_ref(gps, piexif.GPSIFD.GPSLatitudeRef)
    lon_ref = _read_ref(gps, piexif.GPSIFD.GPSLongitudeRef)

    logger.debug(f"lat: {latitude}, {lat_ref}")
    logger.debug(f"long: {longitude}, {lon_ref}")

    if lon_ref == "W":
        longitude = -longitude
    if lat_ref == "S":
        latitude = -latitude

    return GeoCoordinate(latitude=latitude, longitude=longitude)

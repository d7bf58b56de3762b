"""geolocbot: Matrix bot that answers photos with the location hidden in their EXIF data."""

__version__ = "0.3.0"

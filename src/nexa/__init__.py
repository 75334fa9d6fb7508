"""NEXA voice core: response interpretation and speech playback."""

__version__ = "0.1.0"

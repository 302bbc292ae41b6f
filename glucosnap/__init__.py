"""GlucoSnap analysis service: food and glucose-meter photo analysis."""

__version__ = "0.1.0"

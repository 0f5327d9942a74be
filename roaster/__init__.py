"""Voice Roaster: consent-gated voice roast workflow."""

__version__ = "0.1.0"

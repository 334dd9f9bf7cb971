"""HTTP control surface for a servo-driven light switch."""

__version__ = "0.1.0"

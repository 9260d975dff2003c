"""TinyHCI - hardware-in-the-loop CI for microcontroller boards.

This package receives commit and artifact notifications, flashes test
firmware onto boards attached over serial, and reports pass/fail to the
GitHub Checks API.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]

"""nearauth - delegated NEAR wallet login and signed contract calls."""

__version__ = "0.1.0"

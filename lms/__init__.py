"""Learning-management backend: reference integrity, cascades and reporting over MongoDB."""

__version__ = "0.1.0"

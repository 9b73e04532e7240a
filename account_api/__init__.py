"""User account backend: registration, JWT sessions and profile media."""

__version__ = "0.1.0"

"""Till platform control layer: port ownership, port ranges and OS job scheduling."""

__version__ = "1.0.0"

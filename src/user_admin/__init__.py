"""User administration grid/form synchronization core."""

__version__ = "0.1.0"

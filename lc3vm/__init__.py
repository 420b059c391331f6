"""A virtual machine for the LC-3 educational computer architecture."""

__version__ = "0.1.0"
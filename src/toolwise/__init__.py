"""Toolwise: AI tool recommendations over a curated, self-growing catalog."""

__version__ = "0.3.0"

"""Safe block-level editing for a Caddyfile."""

__version__ = "0.1.0"

"""cartonprice - wholesale carton pricing engine."""

__version__ = "0.1.0"

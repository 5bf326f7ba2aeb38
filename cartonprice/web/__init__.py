"""HTTP API for cartonprice."""

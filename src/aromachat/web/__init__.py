"""AromaChat web API."""

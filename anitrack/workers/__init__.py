"""In-process background job processing."""

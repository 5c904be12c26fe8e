"""Services for the metadata graph."""

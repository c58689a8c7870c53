"""Services built on top of the repositories."""

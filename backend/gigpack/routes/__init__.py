"""Route modules for the gig pack API."""

__all__ = [
    "gigpack",
    "gigs",
    "notifications",
    "roles",
]

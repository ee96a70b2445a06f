"""API routers for the callback relay."""

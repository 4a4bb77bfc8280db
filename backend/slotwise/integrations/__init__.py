"""External collaborators consumed by the booking core."""

"""Request and response DTOs for the Slotwise API."""

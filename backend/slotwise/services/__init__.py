"""Service layer for the Slotwise booking core."""

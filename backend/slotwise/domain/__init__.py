"""Pure scheduling rules with no database or framework dependencies."""

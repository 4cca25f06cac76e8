"""HTTP routes for the gateway."""

"""Read-only projections of production state."""

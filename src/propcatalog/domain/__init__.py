"""Domain core: catalog model, selection resolution and association reconciliation."""

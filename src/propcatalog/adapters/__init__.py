"""Adapters implementing the catalog client port."""

"""Bounded assembly of grounding content."""

"""Messagely messages API."""

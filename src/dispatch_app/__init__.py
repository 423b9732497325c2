"""Dispatch load optimization backend."""

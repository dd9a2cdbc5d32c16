"""Marketplace reservation lifecycle service."""

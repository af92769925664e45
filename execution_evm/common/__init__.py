"""Shared types, hashing and configuration."""

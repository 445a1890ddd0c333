"""Shared utilities for the emotion fusion service."""

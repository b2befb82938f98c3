"""Shared framework, storage and utilities for the order services."""

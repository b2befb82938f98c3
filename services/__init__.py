"""Service implementations for the order processing domain."""

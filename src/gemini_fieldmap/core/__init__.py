"""Core data types and models shared across the field-mapping engine."""

"""Domain layer - pure types, rules and policies (no I/O)."""

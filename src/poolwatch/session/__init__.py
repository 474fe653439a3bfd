"""Per-session lifecycle: state models and the session manager."""

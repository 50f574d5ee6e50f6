"""Core primitives: settings, logging, errors, persisted state and schema."""

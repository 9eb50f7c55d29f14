"""memfs — an in-memory file store with a command shell and binary snapshots."""

__version__ = "0.1.0"

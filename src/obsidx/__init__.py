"""obsidx — lexical and similarity search over a markdown vault."""

__version__ = "0.1.0"

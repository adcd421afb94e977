"""Study portal backend: magic-link auth over a Notion-backed student directory."""

__version__ = "0.1.0"

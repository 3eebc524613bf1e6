"""Embeddable chat widget runtime: identity, widget API client, conversation state, forms and lifecycle."""

__version__ = "1.0.0"

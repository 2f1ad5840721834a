"""brainvault - hierarchical memory consolidation for agent activity."""

__version__ = "0.1.0"

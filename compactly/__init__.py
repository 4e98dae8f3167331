"""compactly - conversation context compaction for coding agents."""

__version__ = "0.1.0"
__logo__ = "🗜️"

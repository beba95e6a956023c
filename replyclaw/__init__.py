"""replyclaw - chat auto-replies backed by a command-line agent."""

__version__ = "0.1.0"
__logo__ = "🦀"

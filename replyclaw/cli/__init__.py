"""CLI module for replyclaw."""

"""Auto-reply pipeline: directives, sessions, body composition and agent runs."""

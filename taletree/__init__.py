"""TaleTree — branching, AI-narrated stories with save and resume."""

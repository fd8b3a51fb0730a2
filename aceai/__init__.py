"""AceAI study companion."""

"""Study Assistant API: AI-generated study material from uploaded documents."""

__version__ = "1.0.0"

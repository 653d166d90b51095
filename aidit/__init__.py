"""aidit: local artifact cache and edit history for AI-assisted photo editing."""

__version__ = "0.1.0"

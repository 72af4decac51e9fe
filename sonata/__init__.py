"""sonata: iteration engine for checklist-driven coding agents."""

__version__ = "0.1.0"

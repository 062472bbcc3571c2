"""Academy Core - level access workflow for the learning platform."""

__version__ = "1.0.0"

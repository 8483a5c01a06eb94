"""LearnLoop: learning-session lifecycle and timer engine."""

__version__ = "0.1.0"

"""runserver: keep one supervised command running and forward its output to logging."""

__version__ = "0.1.0"

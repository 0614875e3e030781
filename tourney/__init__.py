"""Tournament registration, slot allocation and prize settlement."""

__version__ = "1.0.0"

"""toolchat - streaming chat assistant with tool-provider calls."""

__version__ = "0.1.0"

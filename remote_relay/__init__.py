"""Remote control relay for terminal-hosted Claude sessions."""

__version__ = "0.1.0"

"""atptunnel: SSH remote-forward tunnel in front of a database endpoint."""

__version__ = "0.1.0"

"""Network endpoint value type."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Endpoint:
    """A host/port pair."""

    host: str
    port: int

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"

    @classmethod
    def parse(cls, value: str, default_host: str = "localhost") -> "Endpoint":
        """
        Parse 'host:port', '[v6]:port' or a bare 'port'.

        Raises:
            ValueError: If the port is missing or not a valid port number.
        """
        value = value.strip()
        host, sep, port_str = value.rpartition(":")
        if not sep:
            host, port_str = default_host, value
        host = host.strip("[]") or default_host
        try:
            port = int(port_str)
        except ValueError:
            raise ValueError(f"Invalid port in address '{value}'") from None
        if not 1 <= port <= 65535:
            raise ValueError(f"Port must be between 1 and 65535, got {port}")
        return cls(host, port)

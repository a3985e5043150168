"""Mock Stratum V1 and V2 mining devices, block header helpers and translator proxy configuration."""

__version__ = "0.1.0"
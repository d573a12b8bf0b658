"""Git hooks library: load a YAML hooks configuration and run its commands and scripts."""

__version__ = "1.3.3"
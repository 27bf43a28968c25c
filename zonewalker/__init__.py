"""zonewalker — enumerate DNSSEC-signed zones by walking their NSEC chain."""

__version__ = "0.3.0"

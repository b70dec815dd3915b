"""Data-link transports for BACnet frames."""

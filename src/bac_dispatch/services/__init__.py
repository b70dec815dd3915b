"""BACnet service request/response types and error definitions."""

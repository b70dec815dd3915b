"""BACnet data types: enumerations, primitives, and parsing helpers."""

"""BACnet wire encoding: tags, primitive values, APDU headers and the codec."""

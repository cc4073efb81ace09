"""Door Dialer - buzz people into a building through a dial-up modem."""

__version__ = "0.1.0"

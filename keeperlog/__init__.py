"""keeperlog: placement logbook and competency tracker for animal care students."""

__version__ = "0.1.0"

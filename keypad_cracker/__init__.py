"""Timing side-channel recovery of keypad lock passwords."""

__version__ = "0.1"

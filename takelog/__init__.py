"""TakeLog: take registry and duplicate resolution engine for film production logs."""

__version__ = "0.1.0"

"""Cargo carrier drivers (Hepsijet, Navlungo)."""

from drivers.cargo.base import CargoDriver, DEFAULT_CANCEL_REASON
from drivers.cargo.hepsijet import HepsijetDriver
from drivers.cargo.navlungo import NavlungoDriver

__all__ = ["CargoDriver", "DEFAULT_CANCEL_REASON", "HepsijetDriver", "NavlungoDriver"]

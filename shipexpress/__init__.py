"""
ShipExpress shipment tracking core.

Shipment lifecycle, history ledger, notifications, messaging and
realtime reconciliation for the customer / staff / agent / admin portals.
"""

__version__ = "1.0.0"

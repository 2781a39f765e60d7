"""
Voucher - redeemable vesting positions.

A holder escrows a fungible balance behind one or more release schedules,
receives a transferable receipt token, and later redeems whatever has
become releasable.
"""

__version__ = "0.1.0"

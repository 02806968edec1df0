"""
EventVault — shared media vaults for events.

Access resolution, concurrent uploads, optimistic deletes and
change-feed reconciliation for a vault's folder/file listing.
"""

import os

__version__ = "0.1.0"
__author__ = "EventVault"

EVENTVAULT_HOME = os.environ.get("EVENTVAULT_HOME", "~/.eventvault")

"""Core vesting engine and its collaborator contracts."""

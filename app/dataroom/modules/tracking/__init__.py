"""
Access tracking: the per-investor access ledger and reporting over it.
"""

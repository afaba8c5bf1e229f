"""
SpendScan — receipt / bank-statement ingestion for a personal-finance tracker.
"""

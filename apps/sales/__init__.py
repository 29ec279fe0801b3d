"""
Billing app: pricing, invoice numbering and transaction settlement.
"""

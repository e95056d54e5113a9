"""
Bank Onboarding

Provisions a newly registered identity into a usable banking identity:
profile submission, account creation, card issuance with compensating
rollback, and one-time disclosure of the temporary card PIN.
"""

__version__ = "1.0.0"

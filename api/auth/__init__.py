"""
Accounts, JWT access tokens and rotating refresh tokens.
"""

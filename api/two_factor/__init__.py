"""
TOTP two-factor authentication and backup codes.
"""

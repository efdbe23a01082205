"""
Security bookkeeping: audit log, login attempts, security events.
"""

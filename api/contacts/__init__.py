"""
Contact management for the owning user.
"""

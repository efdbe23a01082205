"""
Email campaigns: recipients, delivery and engagement tracking.
"""

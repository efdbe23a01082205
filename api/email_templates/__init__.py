"""
Reusable email templates with {{placeholder}} variables.
"""

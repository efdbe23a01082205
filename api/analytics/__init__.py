"""
Campaign and engagement analytics, report exports and scheduled reports.
"""

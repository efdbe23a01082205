"""
Rule-based automation: triggers run an ordered list of actions.
"""

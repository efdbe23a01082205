"""
LLM-assisted content generation and campaign optimization helpers.
"""

"""
Third-party integrations with encrypted credentials and outbound webhooks.
"""

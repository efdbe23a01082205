"""
User notifications: storage, per-channel delivery and the WebSocket push hub.
"""

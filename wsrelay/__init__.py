"""WebSocket relay with rotating forward proxies and proof-of-work token solving."""

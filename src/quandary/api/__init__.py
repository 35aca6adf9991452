"""HTTP and WebSocket API for Quandary."""

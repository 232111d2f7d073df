"""Real-time infrastructure — Redis pub/sub + WebSocket.

Learn: page events flow through two hops:
1. API save → Redis PUBLISH on the pages channel
2. Redis SUBSCRIBE → WebSocket → every connected editor

Producers (routes) never know who is listening.
"""

"""
Service layer: domain services, audit logging and realtime events.
"""

"""
Connection lifecycle module.

Owns the transport session, the connection state machine, the I/O thread
and the resubscribe-on-connect policy.
"""

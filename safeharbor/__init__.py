"""SafeHarbor: crisis detection and escalation subsystem.

Assesses inbound messages for self-harm/crisis risk, selects an
intervention protocol, and drives a multi-channel escalation with
mandatory audit logging.
"""

__version__ = "0.1.0"

"""Crisis Engine: the surface exposed to the chat/message pipeline.

A crisis escalation must run to completion: every entry point returns a
typed result, and an escalation always carries alternatives.

Endpoints:
- POST /crisis/analyze - Assess a message
- POST /crisis/messages - Assess, persist, escalate high/critical risk
- POST /crisis/escalate - Escalate a stored assessment
- POST /crisis/safety-plan - Build and deliver a safety plan
"""

from .engine import CrisisEngine, ProcessedMessage, build_engine

__all__ = [
    "CrisisEngine",
    "ProcessedMessage",
    "build_engine",
]

"""SafeHarbor crisis services.

Service layout, leaves first:
- resource_directory: hotlines, contacts, regional emergency services
- risk_service: message text + behavior -> CrisisAssessment
- protocol_service: assessment -> InterventionProtocol (catalog lookup)
- escalation_service: protocol execution, channels, escalation store
- safety_plan_service: safety plan assembly and delivery
- audit_service / notification_service: compliance and delivery sinks
- crisis_engine: exposed interface and HTTP handler
"""

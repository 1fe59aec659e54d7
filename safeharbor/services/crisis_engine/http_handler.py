"""Crisis Engine HTTP handler - assessment, escalation and safety-plan endpoints.

The calling chat pipeline posts each inbound message here; escalation
responses are always 200 with a typed result, never a bare error.
"""
import atexit
import logging
import os
from typing import Any, Dict, Optional, Tuple

from flask import Flask, jsonify, request

from safeharbor.shared.models import AssessmentContext
from safeharbor.shared.utils import safe_hash_pii
from .engine import build_engine
from .runtime import EngineRuntime

logger = logging.getLogger(__name__)

app = Flask(__name__)

engine = build_engine()
runtime = EngineRuntime()
atexit.register(runtime.shutdown, engine)


def _require(data: Optional[Dict[str, Any]], *fields: str) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    if not data:
        return None, "Request body required"
    missing = [f for f in fields if not data.get(f)]
    if missing:
        return None, f"Missing {', '.join(missing)}"
    return data, None


def _context(data: Dict[str, Any]) -> Optional[AssessmentContext]:
    """Build the optional assessment context.

    Raises:
        ValueError: If the context is not an object or a field has the wrong type
    """
    raw = data.get("context")
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValueError("Invalid context: must be an object")
    try:
        mood = raw.get("current_mood")
        return AssessmentContext(
            recent_crisis_flags=int(raw.get("recent_crisis_flags", 0)),
            current_mood=float(mood) if mood is not None else None,
            recent_message_count=(
                int(raw["recent_message_count"]) if raw.get("recent_message_count") is not None else None
            ),
        )
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid context: {e}") from e


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "service": "crisis-engine",
    }), 200


@app.route("/ready", methods=["GET"])
def ready():
    """Readiness check; 503 when the configured database is unreachable or incomplete."""
    status = engine.readiness()
    if not status["ready"]:
        return jsonify({"status": "not_ready", **status}), 503
    return jsonify({"status": "ready", **status}), 200


@app.route("/crisis/analyze", methods=["POST"])
def analyze():
    """Assess one message without escalating.

    Request Body:
        {
            "text": "message text",
            "user_id": "user_123",
            "session_id": "sess_123",
            "message_id": "msg_123",
            "context": {"recent_crisis_flags": 1}
        }
    """
    data, error = _require(request.get_json(silent=True), "text", "user_id", "session_id", "message_id")
    if error:
        return jsonify({"error": error}), 400
    try:
        context = _context(data)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    assessment = runtime.run(engine.analyze(
        data["text"], data["user_id"], data["session_id"], data["message_id"], context,
    ))
    return jsonify(assessment.to_dict()), 200


@app.route("/crisis/messages", methods=["POST"])
def process_message():
    """Assess, persist, and escalate high or critical risk.

    Request Body: same as /crisis/analyze

    Response:
        {
            "assessment": {...},
            "escalation": {...} or null
        }
    """
    data, error = _require(request.get_json(silent=True), "text", "user_id", "session_id", "message_id")
    if error:
        return jsonify({"error": error}), 400
    try:
        context = _context(data)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    processed = runtime.run(engine.process_message(
        data["text"], data["user_id"], data["session_id"], data["message_id"], context,
    ))

    if processed.escalation is not None:
        logger.critical(
            "CRISIS_MESSAGE_ESCALATED",
            extra={
                "user_id_hash": safe_hash_pii(data["user_id"]),
                "assessment_id": processed.assessment.id,
                "state": processed.escalation.state.value,
            }
        )
    return jsonify(processed.to_dict()), 200


@app.route("/crisis/escalate", methods=["POST"])
def escalate():
    """Escalate a stored assessment.

    Request Body:
        {
            "assessment_id": "assess_123"
        }
    """
    data, error = _require(request.get_json(silent=True), "assessment_id")
    if error:
        return jsonify({"error": error}), 400

    assessment = runtime.run(engine.find_assessment(data["assessment_id"]))
    if assessment is None:
        return jsonify({"error": "Assessment not found"}), 404

    result = runtime.run(engine.handle_escalation(assessment))
    return jsonify(result.to_dict()), 200


@app.route("/crisis/safety-plan", methods=["POST"])
def create_safety_plan():
    """Create a safety plan from a stored assessment.

    Request Body:
        {
            "user_id": "user_123",
            "assessment_id": "assess_123"
        }
    """
    data, error = _require(request.get_json(silent=True), "user_id", "assessment_id")
    if error:
        return jsonify({"error": error}), 400

    assessment = runtime.run(engine.find_assessment(data["assessment_id"]))
    if assessment is None:
        return jsonify({"error": "Assessment not found"}), 404

    try:
        plan = runtime.run(engine.create_safety_plan(data["user_id"], assessment))
    except Exception as e:
        logger.error("SAFETY_PLAN_HTTP_ERROR", extra={"error": str(e)})
        return jsonify({"error": "Failed to create safety plan"}), 500

    return jsonify(plan.to_dict()), 201


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    port = int(os.getenv("PORT", "8003"))
    app.run(host="0.0.0.0", port=port, debug=False)

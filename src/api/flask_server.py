"""
Flask API server for the Smart Calendar scheduling engine
"""
import logging
import signal
import sys
import time
import uuid
from datetime import datetime
from typing import Any, Dict, Tuple

from flask import Flask, jsonify, request
from flask_cors import CORS

from config.settings import Config
from src.scheduler.errors import InvalidIntent, SchedulingError
from src.scheduler.models import Intent, SuggestedSlot, WorkspaceScope
from src.scheduler.smart_scheduler import SmartScheduler
from utils.logger import SmartCalendarLogger
from utils.validators import DataSanitizer, IntentValidator

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"


class RequestError(Exception):
    """Malformed HTTP request (missing body, header or field)"""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def parse_intent_payload(payload: Any) -> Intent:
    errors = IntentValidator.validate_payload(payload)
    if errors:
        raise InvalidIntent(errors)
    try:
        return Intent.from_dict(DataSanitizer.sanitize_intent_payload(payload))
    except (TypeError, ValueError) as e:
        raise InvalidIntent([f"Malformed parsedIntent: {e}"]) from e


def parse_slot_payload(payload: Any) -> SuggestedSlot:
    if not isinstance(payload, dict):
        raise InvalidIntent(["selectedSlot must be an object"])
    try:
        slot = SuggestedSlot.from_dict(payload)
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidIntent([f"Malformed selectedSlot: {e}"]) from e
    if slot.end <= slot.start:
        raise InvalidIntent(["selectedSlot endTime must be after startTime"])
    return slot


class SmartCalendarAPI:
    """
    Flask API server exposing parse / suggest / schedule endpoints
    """

    def __init__(self, scheduler: SmartScheduler = None, config: Config = None):
        self.config = config or Config()
        self.app = Flask(__name__)
        CORS(self.app)

        self.scheduler = scheduler or SmartScheduler(config=self.config)
        self.start_time = time.time()
        self.requests_processed = 0

        self._setup_routes()
        self._setup_error_handlers()

    def _json_body(self) -> Dict[str, Any]:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise RequestError("Request body must be a JSON object")
        return data

    def _scope(self, data: Dict[str, Any]) -> WorkspaceScope:
        user_id = (request.headers.get(USER_HEADER) or "").strip()
        if not user_id:
            raise RequestError(f"Missing {USER_HEADER} header")
        return WorkspaceScope(user_id=user_id, workspace_id=data.get("workspaceId"))

    def _finish(self, operation: str, data: Dict[str, Any], response: Dict[str, Any],
                started: float, status: int = 200) -> Tuple[Any, int]:
        self.requests_processed += 1
        SmartCalendarLogger.log_request_response(str(uuid.uuid4()), operation, data, response,
                                                 time.time() - started)
        return jsonify(response), status

    def _setup_routes(self):
        """Setup Flask routes"""

        @self.app.route('/health', methods=['GET'])
        def health_check():
            return jsonify({
                "status": "healthy",
                "timestamp": datetime.now().isoformat(),
                "uptime": time.time() - self.start_time,
                "requests_processed": self.requests_processed,
            })

        @self.app.route('/api/ai/status', methods=['GET'])
        def ai_status():
            return jsonify({
                "success": True,
                "enabled": True,
                "provider": self.config.AI_PROVIDER,
                "calendarBackend": self.config.CALENDAR_BACKEND,
                "features": {"parsing": True, "suggestions": True, "autoSchedule": True},
            })

        @self.app.route('/api/ai/parse', methods=['POST'])
        def parse_intent():
            started = time.time()
            data = self._json_body()
            scope = self._scope(data)
            prompt = data.get("prompt")
            if not isinstance(prompt, str) or not prompt.strip():
                raise RequestError("prompt is required and must be a string")

            logger.info(f"🚀 PARSE REQUEST from {scope.user_id} ({len(prompt)} chars)")
            source = self.scheduler.intent_source
            intent = source.parse_intent(prompt, {"userId": scope.user_id, "timezone": self.config.TIMEZONE})

            response = {"success": True, "parsedIntent": intent.to_dict(), "clarificationNeeded": False}
            if intent.ambiguities:
                logger.info(f"❓ Clarification needed: {', '.join(intent.ambiguities)}")
                response["clarificationNeeded"] = True
                response["clarificationQuestion"] = source.generate_clarification(prompt, intent.ambiguities)
            return self._finish("parse", data, response, started)

        @self.app.route('/api/ai/clarify', methods=['POST'])
        def clarify():
            started = time.time()
            data = self._json_body()
            self._scope(data)
            prompt, ambiguities = data.get("prompt"), data.get("ambiguities")
            if not isinstance(prompt, str) or not isinstance(ambiguities, list):
                raise RequestError("prompt and ambiguities are required")

            question = self.scheduler.intent_source.generate_clarification(prompt, ambiguities)
            return self._finish("clarify", data, {"success": True, "clarificationQuestion": question}, started)

        @self.app.route('/api/ai/suggest', methods=['POST'])
        def suggest_slots():
            started = time.time()
            data = self._json_body()
            scope = self._scope(data)
            option_errors = IntentValidator.validate_ranking_options(data, self.config)
            if option_errors:
                raise RequestError("; ".join(option_errors))
            options = self.config.default_ranking_options(
                search_window_days=data.get("searchWindowDays"),
                min_score=data.get("minScore"),
                max_results=data.get("maxResults"),
                auto_resolve=data.get("autoResolve"),
                strict_threshold=data.get("strict"),
            )
            logger.info(f"🚀 SUGGEST REQUEST from {scope.user_id} (workspace {scope.workspace_id})")

            if data.get("parsedIntent") is None:
                prompt = data.get("prompt")
                if not isinstance(prompt, str) or not prompt.strip():
                    raise RequestError("parsedIntent or prompt is required")
                response = self.scheduler.suggest_from_text(prompt, scope, options)
                return self._finish("suggest", data, response, started)

            intent = parse_intent_payload(data["parsedIntent"])
            slots = self.scheduler.rank(intent, scope, options)
            response = {
                "success": True,
                "parsedIntent": intent.to_dict(),
                "suggestions": [s.to_dict() for s in slots],
            }
            return self._finish("suggest", data, response, started)

        @self.app.route('/api/ai/schedule', methods=['POST'])
        def schedule_event():
            started = time.time()
            data = self._json_body()
            scope = self._scope(data)
            if data.get("parsedIntent") is None:
                raise RequestError("parsedIntent is required")

            intent = parse_intent_payload(data["parsedIntent"])
            auto_resolve = bool(data.get("autoResolveConflicts", False))
            notify = bool(data.get("notifyAttendees", False))

            if data.get("selectedSlot") is None:
                logger.info(f"🚀 AUTO-SCHEDULE REQUEST from {scope.user_id}")
                decision = self.scheduler.schedule(intent, scope, auto_resolve=auto_resolve, notify=notify)
                if decision.error is not None:
                    raise decision.error
                response = dict(decision.result.to_dict(), decision=decision.to_dict())
                return self._finish("schedule", data, response, started)

            slot = parse_slot_payload(data["selectedSlot"])
            logger.info(f"🚀 SCHEDULE REQUEST from {scope.user_id}: slot {slot.start.isoformat()}")
            result = self.scheduler.commit(slot, intent, scope, auto_resolve, notify)
            return self._finish("schedule", data, result.to_dict(), started)

    def _setup_error_handlers(self):

        @self.app.errorhandler(SchedulingError)
        def scheduling_error(error: SchedulingError):
            logger.warning(f"❌ {error.code}: {error.message}")
            return jsonify({"success": False, "error": error.to_dict()}), error.status_code

        @self.app.errorhandler(RequestError)
        def request_error(error: RequestError):
            logger.warning(f"❌ Bad request: {error.message}")
            return jsonify({"success": False, "error": {
                "code": "bad_request",
                "message": error.message,
                "category": "input",
                "details": {},
            }}), error.status_code

        @self.app.errorhandler(404)
        def not_found(error):
            return jsonify({"success": False, "error": {
                "code": "not_found", "message": "Endpoint not found", "category": "input", "details": {},
            }}), 404

        @self.app.errorhandler(500)
        def internal_error(error):
            return jsonify({"success": False, "error": {
                "code": "internal_error", "message": "Internal server error", "category": "retry", "details": {},
            }}), 500

    def _setup_signal_handlers(self):
        """Setup graceful shutdown handlers"""
        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, shutting down gracefully...")
            sys.exit(0)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def run(self, host=None, port=None, debug=False):
        """Run the Flask server"""
        host = host or self.config.API_HOST
        port = port or self.config.API_PORT

        self._setup_signal_handlers()
        logger.info(f"Starting Smart Calendar API server on {host}:{port}")

        self.app.run(
            host=host,
            port=port,
            debug=debug,
            threaded=True,
            use_reloader=False,
        )


def create_app(scheduler: SmartScheduler = None) -> Flask:
    """Factory function to create Flask app"""
    api = SmartCalendarAPI(scheduler)
    return api.app

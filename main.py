import datetime as dt
import logging
import os
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import RequestEntityTooLarge

from review_coach.coach_ai import CoachAIUtil, split_concepts
from review_coach import vision
from review_coach.vision import OCRResult

MAX_IMAGE_BYTES = 10 * 1024 * 1024

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger("review_coach.server")

server = Flask(__name__)
server.config["MAX_CONTENT_LENGTH"] = MAX_IMAGE_BYTES
CORS(server, send_wildcard=True)


def _payload() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _upstream_error(message: str, exc: Exception):
    logger.exception("%s: %s", message, exc)
    return jsonify({"error": message, "details": str(exc)}), 500


@server.route("/api/health", methods=["GET"])
def health():
    return jsonify({"status": "OK", "timestamp": dt.datetime.now(dt.timezone.utc).isoformat()})


@server.route("/api/analyze-image", methods=["POST"])
def analyze_image():
    api_key = request.form.get("apiKey")
    if not api_key:
        return jsonify({"error": "API key is required"}), 400

    image_file = request.files.get("image")
    if not image_file or not image_file.filename:
        return jsonify({"error": "Image file is required"}), 400
    mime_type = image_file.mimetype or ""
    if not mime_type.startswith("image/"):
        return jsonify({"error": "Only image files are allowed"}), 400

    image_bytes = image_file.read()
    if not image_bytes:
        return jsonify({"error": "Image file is required"}), 400

    app_id = request.form.get("appId") or None
    if vision.selected_backend() == "mathpix" and not (app_id or os.environ.get("MATHPIX_APP_ID")):
        return jsonify({"error": "Mathpix app id is required"}), 400

    try:
        ai_util = CoachAIUtil(api_key, app_id=app_id)
        ocr = ai_util.analyze_image(image_bytes, mime_type=mime_type)
    except Exception as e:
        return _upstream_error("Failed to analyze image", e)

    return jsonify(ocr.to_dict())


@server.route("/api/generate-question", methods=["POST"])
def generate_question():
    payload = _payload()
    api_key = payload.get("apiKey")
    ocr_data: Optional[Dict[str, Any]] = payload.get("ocrResult")

    if not api_key:
        return jsonify({"error": "API key is required"}), 400
    if not ocr_data or not isinstance(ocr_data, dict):
        return jsonify({"error": "OCR result is required"}), 400

    try:
        ai_util = CoachAIUtil(api_key)
        generated = ai_util.generate_question(OCRResult.from_dict(ocr_data))
    except Exception as e:
        return _upstream_error("Failed to generate question", e)

    return jsonify(generated.to_dict())


@server.route("/api/generate-specialized-questions", methods=["POST"])
def generate_specialized_questions():
    payload = _payload()
    api_key = payload.get("apiKey")
    problem_data = payload.get("problemData")

    if not api_key:
        return jsonify({"error": "API key is required"}), 400
    if not isinstance(problem_data, dict) or not split_concepts(problem_data.get("concepts")):
        return jsonify({"error": "Problem data with concepts is required"}), 400

    try:
        ai_util = CoachAIUtil(api_key)
        questions = ai_util.generate_specialized_questions(
            concepts=problem_data.get("concepts"),
            problem_text=str(problem_data.get("problemText") or ""),
            latex=str(problem_data.get("latex") or ""),
        )
    except Exception as e:
        return _upstream_error("Failed to generate specialized questions", e)

    return jsonify(questions.to_dict())


@server.route("/api/generate-feedback", methods=["POST"])
def generate_feedback():
    payload = _payload()
    api_key = payload.get("apiKey")
    user_answer = payload.get("userAnswer")
    question_data = payload.get("questionData")

    if not api_key:
        return jsonify({"error": "API key is required"}), 400
    if not user_answer or not question_data:
        return jsonify({"error": "User answer and question data are required"}), 400

    question = question_data.get("question") if isinstance(question_data, dict) else question_data
    if not question:
        return jsonify({"error": "User answer and question data are required"}), 400

    try:
        ai_util = CoachAIUtil(api_key)
        feedback = ai_util.generate_feedback(user_answer=str(user_answer), question=str(question))
    except Exception as e:
        return _upstream_error("Failed to generate feedback", e)

    return jsonify(feedback.to_dict())


@server.route("/api/generate-concept-question", methods=["POST"])
def generate_concept_question():
    payload = _payload()
    api_key = payload.get("apiKey")
    concept = str(payload.get("concept") or "").strip()

    if not api_key:
        return jsonify({"error": "API key is required"}), 400
    if not concept:
        return jsonify({"error": "Concept is required"}), 400

    try:
        ai_util = CoachAIUtil(api_key)
        result = ai_util.generate_concept_question(
            concept=concept,
            level=str(payload.get("level") or "Intermediate"),
            focus=str(payload.get("focus") or ""),
            language=str(payload.get("language") or "ko"),
        )
    except Exception as e:
        return _upstream_error("Failed to generate concept question", e)

    return jsonify(result)


@server.errorhandler(RequestEntityTooLarge)
def too_large(_e):
    return jsonify({"error": "Image file is too large (max 10MB)"}), 413


@server.errorhandler(404)
def not_found(_e):
    if request.path.startswith("/api"):
        return jsonify({"error": "API route not found"}), 404
    return jsonify({"error": "Not found"}), 404


if __name__ == '__main__':
    import set_env_vars

    set_env_vars.load()
    server.run(port=int(os.environ.get("PORT", "3001")))

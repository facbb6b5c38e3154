from flask import Flask, request, jsonify
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix
from dotenv import load_dotenv
import os
import json
import logging

from intake import Intake, validate_intake_payload
from analysis import AnalysisOrchestrator
from llm_client import get_remote_analyzer, ConfigurationError, RemoteAnalysisError, SchemaError
from db import save_last_report, get_last_report

# --- Initialization ---
load_dotenv()

logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)
# Respect reverse proxy headers (scheme/host) when deployed behind one
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1)

# Remote collaborator for both analyze routes; None means the shared env-configured one
app.config.setdefault("REMOTE_ANALYZER", None)


def _check_saved_report():
    # Startup only notes whether a previous report exists
    try:
        if get_last_report() is not None:
            logger.info("Found a saved report from a previous session")
    except Exception as e:
        logger.warning(f"Could not read saved report: {e}")


_check_saved_report()


def _read_json_body():
    """Returns (body, error_response)."""
    raw = request.get_data(as_text=True)
    if not raw or not raw.strip():
        return {}, None
    try:
        body = json.loads(raw)
    except ValueError:
        return None, (jsonify({"error": "Invalid JSON body"}), 400)
    if isinstance(body, str):
        # Some clients double-encode the body
        try:
            body = json.loads(body)
        except ValueError:
            return None, (jsonify({"error": "Invalid JSON body"}), 400)
    return body, None


# --- Flask Routes ---

@app.route('/healthz', methods=['GET'])
def healthz():
    return jsonify({"status": "ok"}), 200


@app.route('/api/analyze', methods=['GET', 'POST'])
def api_analyze():
    """
    Raw remote path: {systemPrompt, userJson} in, report out.
    No fallback here; failures map to status codes.
    """
    if request.method == 'GET':
        return jsonify({"status": "ok"}), 200

    body, err = _read_json_body()
    if err:
        return err
    body = body if isinstance(body, dict) else {}
    system_prompt = body.get("systemPrompt")
    user_json = body.get("userJson")
    if not system_prompt or not user_json:
        return jsonify({"error": "Missing systemPrompt or userJson"}), 400

    try:
        remote = app.config.get("REMOTE_ANALYZER") or get_remote_analyzer()
        report = remote.analyze(system_prompt, user_json)
    except ConfigurationError:
        return jsonify({"error": "Missing OPENAI_API_KEY"}), 500
    except SchemaError as e:
        return jsonify({"error": "Invalid JSON from model", "details": str(e)}), 502
    except RemoteAnalysisError as e:
        details = getattr(e, "details", None) or str(e)
        return jsonify({"error": "OpenAI error", "details": details}), 502
    except Exception as e:
        logger.exception("Remote analysis request failed")
        return jsonify({"error": "LLM request failed", "details": str(e)}), 500
    return jsonify(report), 200


@app.route('/analyze', methods=['POST'])
def analyze():
    payload, err = _read_json_body()
    if err:
        return err

    errors = validate_intake_payload(payload)
    if errors:
        return jsonify({"error": "validation_failed", "fields": errors}), 400

    intake = Intake.from_dict(payload)
    report = AnalysisOrchestrator(remote=app.config.get("REMOTE_ANALYZER")).run(intake)

    try:
        save_last_report(report)
    except Exception as e:
        logger.warning(f"Failed to save report: {e}")
    return jsonify(report), 200


@app.route('/results/latest', methods=['GET'])
def latest_result():
    report = get_last_report()
    if report is None:
        return jsonify({"error": "not found"}), 404
    return jsonify(report), 200


# --- Main Execution ---
if __name__ == '__main__':
    logging.basicConfig(level=os.environ.get('LOG_LEVEL', 'INFO'))
    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port, debug=False)

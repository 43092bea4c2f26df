import os
import logging
from datetime import datetime, timezone
from dotenv import load_dotenv
from flask import Flask, request, jsonify, current_app
from flask_cors import CORS
from openai import OpenAI, APIConnectionError, APITimeoutError
from pydantic import ValidationError
import httpx

import catalog
import tutor
from schemas import TurnRequest

# Load environment variables
load_dotenv()

# ---------- Centralized Config ----------
class Config:
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
    HOST = os.getenv('HOST', '0.0.0.0')
    # Werkzeug debugger is opt-in and only ever bound to loopback
    DEBUG = os.getenv('DEBUG', 'false').lower() == 'true'
    PORT = int(os.getenv('PORT', '3000'))
    OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
    OPENAI_MODEL = os.getenv('OPENAI_MODEL') or tutor.DEFAULT_MODEL
    # The mobile client calls from arbitrary origins unless narrowed here
    ALLOWED_ORIGINS = [o.strip() for o in (os.getenv('ALLOWED_ORIGINS') or '*').split(',') if o.strip()]
    MAX_TURN_CHARS = int(os.getenv('MAX_TURN_CHARS', '2000'))

VERSION = os.getenv('VERSION', '1.0.0')

# Logging
logging.basicConfig(level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
                    format='%(asctime)s %(levelname)s %(message)s')
logger = logging.getLogger(__name__)


def server_options(config):
    """Arguments for app.run(); debug mode never listens beyond localhost."""
    debug = bool(config.get('DEBUG'))
    host = '127.0.0.1' if debug else config.get('HOST', '0.0.0.0')
    return {'host': host, 'port': int(config.get('PORT', 3000)), 'debug': debug}


def _error(error, details, status):
    return jsonify({'error': error, 'details': details}), status


def create_app(overrides=None, client=None):
    """Build the Flask app.

    The OpenAI client is created once here from configuration (or injected)
    and shared read-only by every request.
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    CORS(app, resources={r"/*": {"origins": app.config['ALLOWED_ORIGINS'],
                                  "methods": ["GET", "POST", "OPTIONS"],
                                  "allow_headers": ["Content-Type", "Authorization"]}})

    if client is None and app.config.get('OPENAI_API_KEY'):
        client = OpenAI(api_key=app.config['OPENAI_API_KEY'])
    app.extensions['openai_client'] = client

    # ---------- Health/Version Endpoints ----------
    @app.route('/health', methods=['GET'])
    def health():
        return jsonify({
            'status': 'ok',
            'message': 'Vyria server is running',
            'time': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
        })

    @app.route('/version', methods=['GET'])
    def version():
        return jsonify({'version': VERSION})

    # ---------- Chat ----------
    @app.route('/chat', methods=['POST'])
    def chat():
        openai_client = current_app.extensions.get('openai_client')
        if openai_client is None:
            return _error('OpenAI API key is not configured.',
                          'Set OPENAI_API_KEY in your .env.', 500)

        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return _error('Invalid chat request', 'Request body must be a JSON object', 400)
        try:
            turn = TurnRequest.model_validate(data)
        except ValidationError as e:
            return _error('Invalid chat request', str(e), 400)

        max_chars = current_app.config['MAX_TURN_CHARS']
        # Only the learner's own messages are capped
        if any(m.role == 'user' and len(m.content) > max_chars for m in turn.messages):
            return _error('Invalid chat request', f'Message too long (max {max_chars} characters)', 400)

        try:
            result = tutor.run_turn(openai_client, turn, model=current_app.config['OPENAI_MODEL'])
        except (APITimeoutError, httpx.TimeoutException) as e:
            logger.error("Timeout in chat endpoint: %s", e)
            return _error('Failed to process chat request',
                          'Network timeout contacting OpenAI. Check your internet connection or firewall.', 504)
        except (APIConnectionError, httpx.ConnectError) as e:
            logger.error("ConnectError in chat endpoint: %s", e)
            return _error('Failed to process chat request',
                          'Cannot reach OpenAI. No internet route or DNS blocked.', 503)
        except Exception as e:
            logger.exception("OpenAI API error in chat endpoint")
            return _error('Failed to process chat request', str(e), 500)

        logger.info("Chat turn: language=%s level=%s roleplay=%s points=%d",
                    turn.language, turn.level, turn.roleplay is not None, result.points)
        return jsonify(result.to_json())

    # ---------- Catalog ----------
    @app.route('/languages', methods=['GET'])
    def languages():
        return jsonify(catalog.list_languages())

    @app.route('/roleplays', methods=['GET'])
    def roleplays():
        level = request.args.get('level', 'B1')
        return jsonify(catalog.scenarios_for_level(level))

    @app.route('/tips', methods=['GET'])
    def tips():
        return jsonify(catalog.random_tip())

    return app


app = create_app()

if __name__ == '__main__':
    options = server_options(app.config)
    logger.info("Vyria server running on http://%s:%s", options['host'], options['port'])
    logger.info("OpenAI model: %s", Config.OPENAI_MODEL)
    if not Config.OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY is not set; /chat will return 500")
    app.run(**options)

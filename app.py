import os
import logging
from flask import Flask, request, jsonify, current_app
from werkzeug.exceptions import HTTPException

from config import load_config, validate_environment
from observability import Observability, configure_logging
from token_proxy import handle_token_request
from chat_proxy import handle_chat_request
from diagnostic import handle_diagnostic

# Configure logging
configure_logging()
logger = logging.getLogger(__name__)

ALL_METHODS = ['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS']


def _config():
    return current_app.config['PROXY_CONFIG']


def _observability():
    return current_app.extensions['observability']


def prokerala_token():
    """Exchange the configured client credentials for an access token."""
    return handle_token_request(request.method, _config(), _observability())


def together_chat(subpath=None):
    """Forward a chat-completion request, or answer a health check."""
    body = request.get_json(silent=True) if request.method == 'POST' else None
    return handle_chat_request(
        request.method,
        request.path,
        body,
        request.args,
        _config(),
        _observability(),
    )


def diagnostic():
    """Report which credentials the deployment has."""
    return handle_diagnostic(request.method, request.path, _config(), _observability())


def handle_error(error):
    if isinstance(error, HTTPException):
        return error
    logger.error(f"Unhandled error: {str(error)}", exc_info=True)
    return jsonify({
        'error': 'Server error',
        'message': str(error),
        'type': type(error).__name__
    }), 500


def create_app(config=None, observability=None):
    """Build the Flask app. Configuration is resolved once, here."""
    if config is None:
        config = load_config()
        validate_environment(config)
    if observability is None:
        observability = Observability(cloud_logging_enabled=config.cloud_logging_enabled)

    flask_app = Flask(__name__)
    flask_app.config['PROXY_CONFIG'] = config
    flask_app.extensions['observability'] = observability

    flask_app.add_url_rule('/api/prokerala-token', 'prokerala_token', prokerala_token, methods=ALL_METHODS)
    flask_app.add_url_rule('/api/together-chat', 'together_chat', together_chat, methods=ALL_METHODS)
    flask_app.add_url_rule(
        '/api/together-chat/<path:subpath>', 'together_chat_subpath', together_chat, methods=ALL_METHODS
    )
    flask_app.add_url_rule('/api/diagnostic', 'diagnostic', diagnostic, methods=ALL_METHODS)
    flask_app.register_error_handler(Exception, handle_error)

    logger.info(f"Proxy app created for {config.environment} environment")
    return flask_app


app = create_app()

if __name__ == '__main__':
    app.run(host='0.0.0.0', port=int(os.environ.get('PORT', 8080)))

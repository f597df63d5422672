import json
import logging
from app import app

logger = logging.getLogger(__name__)


# Entry point for platforms that invoke a function instead of a WSGI app
def handler(environ, start_response):
    """Handle requests to the serverless function."""
    try:
        logger.info(f"Received {environ.get('REQUEST_METHOD')} {environ.get('PATH_INFO')} in serverless handler")
        response = app(environ, start_response)
        logger.info("Request processed successfully")
        return response
    except Exception as e:
        logger.error(f"Error in serverless handler: {str(e)}", exc_info=True)
        start_response('500 Internal Server Error', [('Content-Type', 'application/json')])
        return [json.dumps({"error": "Server error", "message": str(e)}).encode('utf-8')]

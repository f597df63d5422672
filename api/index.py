import os
import sys
import logging

# Vercel runs this file from the api/ directory
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import app  # noqa: E402

logger = logging.getLogger(__name__)
logger.info("Vercel entry point loaded; serving Flask app")

__all__ = ['app']

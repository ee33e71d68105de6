# ==============================================================================
# config.py
# ------------------------------------------------------------------------------
# Configuration settings for the Flask application.
# Uses environment variables for sensitive data to keep them out of version control.
# ==============================================================================

import os
from dotenv import load_dotenv

# Determine the absolute path of the project directory
basedir = os.path.abspath(os.path.dirname(__file__))

# Load environment variables from a .env file located in the project root
load_dotenv(os.path.join(basedir, '.env'))

class Config:
    """
    Base configuration class. Contains default settings that can be overridden
    by environment-specific configurations.
    """
    # --- Security ---
    # Needed by Flask sessions and Flask-WTF even though the JSON forms skip CSRF.
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-should-really-set-a-secret-key-in-your-env-file'

    # --- Database Configuration ---
    # SQLite in the instance folder unless DATABASE_URL points somewhere else.
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'instance/app.db')

    # Disable an SQLAlchemy feature that is not needed and adds overhead.
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # --- Export ---
    # Filename prefix used for the CSV matrix export.
    EXPORT_FILENAME_PREFIX = os.environ.get('EXPORT_FILENAME_PREFIX') or 'commission-matrix'

import logging
import os

from flask import Flask
from flask_cors import CORS

from docflow.config import Config


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(
        level=getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    allowed_origins = [
        'http://localhost:5173',  # Vite dev server
        'http://localhost:3000',
    ]

    env_origins = os.getenv('CORS_ORIGINS', '')
    if env_origins:
        allowed_origins.extend([origin.strip() for origin in env_origins.split(',')])

    CORS(app,
         resources={r"/api/*": {"origins": allowed_origins}},
         supports_credentials=False,
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "OPTIONS"])

    from docflow.routes import workflows
    app.register_blueprint(workflows.workflows_bp)

    from docflow.routes import health
    app.register_blueprint(health.bp)

    return app

import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    # Configuration / log store (PostgREST)
    CONFIG_STORE_URL = os.getenv('CONFIG_STORE_URL', '')
    CONFIG_STORE_SERVICE_KEY = os.getenv('CONFIG_STORE_SERVICE_KEY', '')

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    # Timezone of the preformatted {{timestamp}} value
    WORKFLOW_TIMEZONE = os.getenv('WORKFLOW_TIMEZONE', 'America/Los_Angeles')

    # Flask
    FLASK_ENV = os.getenv('FLASK_ENV', 'development')
    DEBUG = os.getenv('FLASK_ENV') == 'development'

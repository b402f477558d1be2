import os


def _int_env(name, default):
    try:
        return int(os.environ.get(name, default))
    except ValueError:
        return default


class Config:
    # Filled in by create_app when unset, using the instance folder
    SQLALCHEMY_DATABASE_URI = os.environ.get('CRM_DATABASE_URL')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SECRET_KEY = os.environ.get('CRM_SECRET_KEY', 'dev-secret-key-change-me')

    BRAND_NAME = os.environ.get('CRM_BRAND_NAME', 'YourCompany')
    # URL or filesystem path; an empty value skips the logo
    BRAND_LOGO = os.environ.get('CRM_BRAND_LOGO', '')
    CURRENCY_SYMBOL = os.environ.get('CRM_CURRENCY_SYMBOL', '$')

    DASHBOARD_REFRESH_SECONDS = _int_env('CRM_DASHBOARD_REFRESH_SECONDS', 30)
    SCHEDULER_API_ENABLED = False

    LOG_LEVEL = os.environ.get('CRM_LOG_LEVEL', 'INFO').upper()
    LOG_DIR = os.environ.get('CRM_LOG_DIR')

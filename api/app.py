"""
Barangay Records API - Flask Application Entry Point

This module initializes the Flask application with OpenAPI 3.0 support,
configures middleware, and wires the services used by the civic services
backend of Barangay Culiat.
"""

import logging
import os
import time
from datetime import date, datetime

from bson import ObjectId
from flask import send_from_directory
from flask.json.provider import DefaultJSONProvider
from flask_openapi3 import OpenAPI, Info, Tag
from pymongo.errors import PyMongoError

from observability.config import setup_observability
from observability.middleware import add_observability_middleware

# Import middleware and services
from middleware.cors import configure_cors
from middleware.error_handler import ErrorHandlerMiddleware
from middleware.auth import AuthMiddleware
from middleware.audit import AuditMiddleware
from services.mongodb import MongoDBService
from services.redis import RedisService
from services.auth import AuthService
from services.audit import AuditService
from services.health import HealthCheckService
from services.storage import StorageService
from services.payments import PayMongoClient
from services.email import EmailService
from services.verification_codes import VerificationCodeService

# Initialize observability first
setup_observability()

logger = logging.getLogger(__name__)

SERVICE_NAME = "barangay-records-api"
SERVICE_VERSION = os.getenv('SERVICE_VERSION', '1.0.0')

# OpenAPI info
info = Info(
    title="Barangay Records API",
    version=SERVICE_VERSION,
    description="Document requests, payments, verification and resident services for Barangay Culiat"
)

# API tags for organization
tags = [
    Tag(name="Health", description="System health and status")
]


class ApiJSONProvider(DefaultJSONProvider):
    """Serialize datetimes as ISO 8601 and ObjectIds as strings."""

    @staticmethod
    def default(o):
        if isinstance(o, (datetime, date)):
            return o.isoformat()
        if isinstance(o, ObjectId):
            return str(o)
        return DefaultJSONProvider.default(o)


# Create Flask app with OpenAPI
app = OpenAPI(__name__, info=info)
app.json = ApiJSONProvider(app)

# Add observability middleware
add_observability_middleware(app)

# Environment configuration
app.config['ENVIRONMENT'] = os.getenv('ENVIRONMENT', 'development')
app.config['DEBUG'] = app.config['ENVIRONMENT'] == 'development'
app.config['DOCS_ENABLED'] = os.getenv('DOCS_ENABLED', 'true').lower() == 'true'
app.config['OTEL_ENABLED'] = os.getenv('OTEL_ENABLED', 'false').lower() == 'true'

# Database configuration
app.config['MONGODB_URI'] = os.getenv('MONGODB_URI', 'mongodb://localhost:27017/barangay_records_dev')
app.config['MONGODB_DATABASE'] = os.getenv('MONGODB_DATABASE', 'barangay_records_dev')
app.config['REDIS_URL'] = os.getenv('REDIS_URL', 'redis://localhost:6379')

# Security configuration
app.config['JWT_EXPIRE_DAYS'] = int(os.getenv('JWT_EXPIRE_DAYS', '30'))
app.config['VERIFICATION_SECRET'] = os.getenv('VERIFICATION_SECRET', 'dev-verification-secret')

# Payment gateway configuration
app.config['PAYMONGO_SECRET_KEY'] = os.getenv('PAYMONGO_SECRET_KEY', '')
app.config['PAYMONGO_WEBHOOK_SECRET'] = os.getenv('PAYMONGO_WEBHOOK_SECRET', '')

# Uploads
app.config['UPLOAD_FOLDER'] = os.getenv('UPLOAD_FOLDER', 'uploads')
app.config['MAX_CONTENT_LENGTH'] = int(os.getenv('MAX_UPLOAD_MB', '25')) * 1024 * 1024

# API configuration
app.config['BASE_URL'] = os.getenv('BASE_URL', 'http://localhost:5000')
app.config['FRONTEND_URL'] = os.getenv('FRONTEND_URL', 'http://localhost:5173')

if app.config['ENVIRONMENT'] == 'production' and app.config['VERIFICATION_SECRET'] == 'dev-verification-secret':
    logger.warning("VERIFICATION_SECRET is not set; issued documents use the development secret")

# Initialize services
mongodb_service = MongoDBService(app.config['MONGODB_URI'], app.config['MONGODB_DATABASE'])
redis_service = RedisService(app.config['REDIS_URL'])
auth_service = AuthService(expire_days=app.config['JWT_EXPIRE_DAYS'])
audit_service = AuditService(mongodb_service)
health_service = HealthCheckService(mongodb_service, redis_service, SERVICE_VERSION)
storage_service = StorageService(app.config['UPLOAD_FOLDER'])
payment_client = PayMongoClient(app.config['PAYMONGO_SECRET_KEY'])
email_service = EmailService()
verification_code_service = VerificationCodeService(redis_service)

# Initialize middleware
auth_middleware = AuthMiddleware(auth_service, redis_service)
audit_middleware = AuditMiddleware(audit_service)
error_handler = ErrorHandlerMiddleware(app)

# Configure CORS
cors_middleware = configure_cors(app, allow_credentials=True)

# Make services available to routes
app.mongodb_service = mongodb_service
app.redis_service = redis_service
app.auth_service = auth_service
app.audit_service = audit_service
app.health_service = health_service
app.storage_service = storage_service
app.payment_client = payment_client
app.email_service = email_service
app.verification_code_service = verification_code_service
app.auth_middleware = auth_middleware
app.audit_middleware = audit_middleware

# Register routes
from routes.auth import auth_bp
from routes.document_requests import document_requests_bp
from routes.payments import payments_bp
from routes.verification import verification_bp
from routes.profile import profile_bp
from routes.profile_updates import profile_updates_bp
from routes.profile_verification import profile_verification_bp
from routes.logs import logs_bp
from routes.content import announcements_bp, officials_bp, services_bp, faqs_bp
from routes.sectoral import sectoral_bp
from routes.reports import reports_bp
from routes.contact_messages import contact_messages_bp
from routes.settings import settings_bp
from routes.terms import terms_bp

for blueprint in (
    auth_bp,
    document_requests_bp,
    payments_bp,
    verification_bp,
    profile_bp,
    profile_updates_bp,
    profile_verification_bp,
    logs_bp,
    announcements_bp,
    officials_bp,
    services_bp,
    faqs_bp,
    sectoral_bp,
    reports_bp,
    contact_messages_bp,
    settings_bp,
    terms_bp,
):
    app.register_api(blueprint)

if app.config['ENVIRONMENT'] != 'test':
    try:
        mongodb_service.create_indexes()
    except PyMongoError as e:
        logger.warning("Could not create MongoDB indexes at startup", extra={"error": str(e)})


@app.get('/api/healthz', tags=[tags[0]])
def health_check():
    """Comprehensive health check covering MongoDB and Redis."""
    health_data = app.health_service.get_comprehensive_health()
    status_code = 503 if health_data["status"] == "unhealthy" else 200
    return health_data, status_code


@app.get('/api/status', tags=[tags[0]])
def get_status():
    """Service metadata, uptime and configuration summary."""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "environment": app.config['ENVIRONMENT'],
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "uptime": _get_application_uptime(),
        "configuration": _get_configuration_summary(),
        "features": _get_feature_flags_status()
    }


@app.route('/uploads/<path:filename>')
def serve_upload(filename):
    return send_from_directory(os.path.abspath(app.config['UPLOAD_FOLDER']), filename)


def _get_application_uptime():
    """Get application uptime information."""
    import psutil

    try:
        process = psutil.Process(os.getpid())
        create_time = process.create_time()
        return {
            "uptime_seconds": round(time.time() - create_time, 2),
            "started_at": datetime.fromtimestamp(create_time).isoformat() + "Z",
            "process_id": os.getpid()
        }
    except psutil.Error as e:
        return {"error": f"Failed to get uptime: {str(e)}"}


def _get_configuration_summary():
    """Report which integrations are configured without exposing values."""
    return {
        "mongodb_configured": bool(os.getenv('MONGODB_URI')),
        "redis_configured": redis_service.is_available(),
        "paymongo_configured": payment_client.is_configured(),
        "smtp_configured": bool(os.getenv('SMTP_HOST')),
        "base_url": app.config['BASE_URL'],
        "frontend_url": app.config['FRONTEND_URL']
    }


def _get_feature_flags_status():
    return {
        "docs_enabled": app.config['DOCS_ENABLED'],
        "otel_enabled": app.config['OTEL_ENABLED'],
        "debug_mode": app.config['DEBUG']
    }


if __name__ == '__main__':
    # Development server
    app.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=app.config['DEBUG']
    )

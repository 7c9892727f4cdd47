"""
Civil Registry API - Flask Application Entry Point

This module builds the Flask application with OpenAPI 3.0 support, wires
the services and middleware, and exposes the citizen, admin and health
endpoints.
"""

import os
from typing import Any, Dict, Optional

from flask import jsonify
from flask_openapi3 import OpenAPI, Info, Tag

from .config import load_config
from .middleware.auth import AuthMiddleware
from .middleware.error_handler import ErrorHandlerMiddleware
from .observability.config import setup_observability
from .observability.middleware import add_observability_middleware
from .realtime.feed import ChangeFeed, ChangeNotifier
from .realtime.factory import LiveViewFactory
from .routes.admin import admin_bp
from .routes.auth import auth_bp
from .routes.profile import profile_bp
from .routes.registrations import registrations_bp
from .services.amqp import create_amqp_service
from .services.audit import AuditService
from .services.auth import AuthService
from .services.documents import DocumentService
from .services.hal import create_hal_formatter
from .services.health import HealthCheckService
from .services.mongodb import MongoDBService
from .services.profiles import ProfileService
from .services.redis import RedisService
from .services.registrations import RegistrationService
from .services.roles import RoleService
from .services.sessions import SessionService

health_tag = Tag(name="Health", description="System health and status")


def _build_services(config: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Construct the service graph; entries in ``overrides`` replace the defaults."""
    if "mongodb_service" in overrides:
        mongodb_service = overrides["mongodb_service"]
    else:
        mongodb_service = MongoDBService(
            config['MONGODB_URI'],
            config['MONGODB_DATABASE'],
            max_retries=config['STORE_MAX_RETRIES'],
            retry_delay=config['STORE_RETRY_DELAY']
        )

    if "redis_service" in overrides:
        redis_service = overrides["redis_service"]
    else:
        redis_service = RedisService(config['REDIS_URL'], config['REDIS_TOKEN']) if config['REDIS_URL'] else None

    if "amqp_service" in overrides:
        amqp_service = overrides["amqp_service"]
    else:
        amqp_service = (
            create_amqp_service(config['AMQP_URL'], config['CHANGES_EXCHANGE'])
            if config['AMQP_URL'] else None
        )

    auth_service = overrides.get("auth_service") or AuthService(
        config['JWT_PRIVATE_KEY'],
        config['JWT_PUBLIC_KEY'],
        config['JWT_ACCESS_TOKEN_EXPIRES'],
        config['JWT_REFRESH_TOKEN_EXPIRES']
    )
    feed = overrides.get("feed") or ChangeFeed()
    notifier = ChangeNotifier(feed, amqp_service)
    audit_service = AuditService(mongodb_service)
    role_service = RoleService(mongodb_service, redis_service, cache_ttl=config['JWT_ACCESS_TOKEN_EXPIRES'])
    registration_service = RegistrationService(mongodb_service, notifier, audit_service)

    return {
        "mongodb_service": mongodb_service,
        "redis_service": redis_service,
        "amqp_service": amqp_service,
        "auth_service": auth_service,
        "feed": feed,
        "notifier": notifier,
        "audit_service": audit_service,
        "role_service": role_service,
        "session_service": SessionService(
            mongodb_service,
            auth_service,
            role_service,
            feed,
            redis_service=redis_service,
            audit_service=audit_service,
            admin_entry_point=config['ADMIN_ENTRY_POINT']
        ),
        "registration_service": registration_service,
        "document_service": DocumentService(mongodb_service, registration_service, notifier, audit_service),
        "profile_service": ProfileService(mongodb_service),
        "health_service": HealthCheckService(mongodb_service, redis_service, amqp_service, config),
    }


def create_app(
    config_overrides: Optional[Dict[str, Any]] = None,
    services: Optional[Dict[str, Any]] = None
) -> OpenAPI:
    """
    Build the application.

    Args:
        config_overrides: Settings replacing values read from the environment
        services: Prebuilt services (``mongodb_service``, ``redis_service``,
            ``amqp_service``, ``auth_service``, ``feed``) to use instead of
            the defaults

    Returns:
        Configured OpenAPI (Flask) application
    """
    config = load_config()
    config.update(config_overrides or {})

    setup_observability(config)

    info = Info(
        title="Civil Registry API",
        version=config['SERVICE_VERSION'],
        description="Birth and death registration tracking with an admin review console"
    )
    app = OpenAPI(__name__, info=info)
    app.config.update(config)

    add_observability_middleware(app)

    # Make services available to routes
    for name, service in _build_services(config, services or {}).items():
        setattr(app, name, service)

    app.live_views = LiveViewFactory(
        app.session_service,
        app.registration_service,
        app.feed,
        debounce_seconds=config['REFETCH_DEBOUNCE_SECONDS'],
        citizen_entry_point=config['CITIZEN_ENTRY_POINT'],
        admin_entry_point=config['ADMIN_ENTRY_POINT']
    )
    if config['CHANGE_CONSUMER_ENABLED'] and config['AMQP_URL']:
        app.live_views.start_change_consumer(config['AMQP_URL'], config['CHANGES_EXCHANGE'])

    app.hal_formatter = create_hal_formatter(config['BASE_URL'])
    app.auth_middleware = AuthMiddleware(
        app.session_service,
        config['CITIZEN_ENTRY_POINT'],
        config['ADMIN_ENTRY_POINT']
    )
    app.error_handler = ErrorHandlerMiddleware(app, app.hal_formatter)

    app.register_api(auth_bp)
    app.register_api(registrations_bp)
    app.register_api(admin_bp)
    app.register_api(profile_bp)

    @app.get('/api/healthz', tags=[health_tag])
    def health_check():
        """Dependency health with an overall status; 503 when the record store is down."""
        health_data = app.health_service.get_health()
        status_code = 503 if health_data["status"] == "unhealthy" else 200
        health_data["_links"] = {"self": {"href": f"{config['BASE_URL']}/api/healthz"}}
        return jsonify(health_data), status_code

    return app


if __name__ == '__main__':
    # Development server
    application = create_app()
    application.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=application.config['DEBUG']
    )

# SPDX-License-Identifier: Apache-2.0

"""
Environment configuration for the Civil Registry API.
"""

import os
from typing import Any, Dict


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == 'true'


def load_config() -> Dict[str, Any]:
    """Read application settings from the environment."""
    environment = os.getenv('ENVIRONMENT', 'development')

    return {
        'ENVIRONMENT': environment,
        'DEBUG': environment == 'development',
        'DOCS_ENABLED': _flag('DOCS_ENABLED', 'true'),
        'SERVICE_VERSION': os.getenv('SERVICE_VERSION', '1.0.0'),

        # API configuration
        'BASE_URL': os.getenv('BASE_URL', 'http://localhost:5000'),
        'CITIZEN_ENTRY_POINT': os.getenv('CITIZEN_ENTRY_POINT', '/auth'),
        'ADMIN_ENTRY_POINT': os.getenv('ADMIN_ENTRY_POINT', '/admin-auth'),

        # Database configuration
        'MONGODB_URI': os.getenv('MONGODB_URI', 'mongodb://localhost:27017/civil_registry_dev'),
        'MONGODB_DATABASE': os.getenv('MONGODB_DATABASE', 'civil_registry_dev'),
        'STORE_MAX_RETRIES': int(os.getenv('STORE_MAX_RETRIES', '3')),
        'STORE_RETRY_DELAY': float(os.getenv('STORE_RETRY_DELAY', '0.2')),

        # Cache / session blocklist
        'REDIS_URL': os.getenv('REDIS_URL', ''),
        'REDIS_TOKEN': os.getenv('REDIS_TOKEN', ''),

        # Change notifications
        'AMQP_URL': os.getenv('AMQP_URL', ''),
        'CHANGES_EXCHANGE': os.getenv('CHANGES_EXCHANGE', 'registry.changes'),
        'REFETCH_DEBOUNCE_SECONDS': float(os.getenv('REFETCH_DEBOUNCE_SECONDS', '0.25')),
        'CHANGE_CONSUMER_ENABLED': _flag('CHANGE_CONSUMER_ENABLED', 'false'),

        # Security configuration
        'JWT_PRIVATE_KEY': os.getenv('JWT_PRIVATE_KEY'),
        'JWT_PUBLIC_KEY': os.getenv('JWT_PUBLIC_KEY'),
        'JWT_ACCESS_TOKEN_EXPIRES': int(os.getenv('JWT_ACCESS_TOKEN_EXPIRES', '900')),  # 15 minutes
        'JWT_REFRESH_TOKEN_EXPIRES': int(os.getenv('JWT_REFRESH_TOKEN_EXPIRES', '604800')),  # 7 days

        # Feature flags
        'OTEL_ENABLED': _flag('OTEL_ENABLED', 'true'),
    }

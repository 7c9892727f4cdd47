# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - External integrations and side effects.
"""

from .mongodb import MongoDBService, get_mongodb_service, close_mongodb_connection
from .amqp import AMQPService, AMQPConfig, ChangeConsumer, PublishResult, create_amqp_service
from .registrations import RegistrationService
from .sessions import SessionService

__all__ = [
    "MongoDBService",
    "get_mongodb_service",
    "close_mongodb_connection",
    "AMQPService",
    "AMQPConfig",
    "ChangeConsumer",
    "PublishResult",
    "create_amqp_service",
    "RegistrationService",
    "SessionService"
]

#!/usr/bin/env python3
# SPDX-License-Identifier: Apache-2.0

"""
Script to grant or change the role of an existing account.

Administrators cannot sign themselves up; an operator promotes an account
with this script:

    python -m registry_api.scripts.assign_role reviewer@example.org admin
"""

import argparse
import logging
import sys
from typing import List, Optional

from ..config import load_config
from ..models.enums import AppRole
from ..services.mongodb import MongoDBService
from ..services.redis import RedisService
from ..services.roles import RoleService

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def assign_role(role_service: RoleService, mongodb_service: MongoDBService, email: str, role: AppRole) -> bool:
    """
    Assign ``role`` to the account registered with ``email``.

    Returns:
        False when no account uses the email
    """
    user = mongodb_service.find_one("users", {"email": email.strip().lower()})
    if user is None:
        logger.error(f"No account found for {email}")
        return False

    role_service.assign_role(user["id"], role)
    logger.info(f"Assigned role '{AppRole(role).value}' to {email}")
    return True


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Assign a role to an account")
    parser.add_argument("email", help="Account email")
    parser.add_argument("role", choices=[role.value for role in AppRole], help="Role to assign")
    args = parser.parse_args(argv)

    config = load_config()
    mongodb_service = MongoDBService(config['MONGODB_URI'], config['MONGODB_DATABASE'])
    redis_service = RedisService(config['REDIS_URL'], config['REDIS_TOKEN']) if config['REDIS_URL'] else None
    role_service = RoleService(mongodb_service, redis_service)

    try:
        return 0 if assign_role(role_service, mongodb_service, args.email, AppRole(args.role)) else 1
    finally:
        mongodb_service.close_connection()


if __name__ == "__main__":
    sys.exit(main())

# SPDX-License-Identifier: Apache-2.0

"""
Middleware package for request processing.

This package contains the bearer token guards for the citizen and admin
surfaces and the problem document error handlers.
"""

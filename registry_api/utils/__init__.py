# SPDX-License-Identifier: Apache-2.0

"""
Request handling helpers shared by the route modules.
"""

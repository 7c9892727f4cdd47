# SPDX-License-Identifier: Apache-2.0

"""
Operational scripts, run with ``python -m registry_api.scripts.<name>``.
"""

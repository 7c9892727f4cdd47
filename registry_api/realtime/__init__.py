# SPDX-License-Identifier: Apache-2.0

"""
Live views over the registration store.

Views open with a full fetch, subscribe to change notifications and refetch
(debounced) whenever one arrives. Subscriptions are cancellable handles that
views release on close.
"""

"""Stable failure codes for fetch and delivery.

Used by: rss_fetch (FetchResult.error_code), webhook (response_text), repo (failed filter).
"""

# Fetch
FETCH_TIMEOUT = "FETCH_TIMEOUT"
FETCH_TRANSIENT = "FETCH_TRANSIENT"
RATE_LIMITED = "RATE_LIMITED"
FETCH_PERMANENT = "FETCH_PERMANENT"

# Delivery
WEBHOOK_ERROR_PREFIX = "Webhook error:"   # stored in response_text, read by filters + dashboard
WEBHOOK_TIMEOUT = "timeout"
WEBHOOK_NETWORK = "network"

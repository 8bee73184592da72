"""
invoice_hub.integrations

Outbound integrations with systems owned by service providers.
"""

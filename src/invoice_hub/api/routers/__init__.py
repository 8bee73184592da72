"""
invoice_hub.api.routers

HTTP routers, one module per resource.
"""

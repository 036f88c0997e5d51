"""
HTTP routers for webhook intake, diagnostics and health.
"""

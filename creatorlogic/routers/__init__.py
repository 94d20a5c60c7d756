"""HTTP routers, one module per area: auth, jobs, partnerships, analytics
and App Store credentials.  ``main.create_application`` includes them all.
"""

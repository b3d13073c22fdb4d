"""
E-Permitted Backend — API Routes Package
=========================================

Route Inventory:
    - auth.py:     POST /api/auth/register, POST /api/auth/login
    - users.py:    /api/users, /api/users/profile, /api/users/{id}
    - councils.py: /api/councils, /api/councils/{id}
    - permits.py:  /api/permits/types, /api/permits/submit,
                   /api/permits, /api/permits/{id}, /api/permits/{id}/status
    - health.py:   GET /health

Routes are thin: they extract request data, call a service, and wrap the
result in the `{success: true, ...}` envelope. Errors are raised as
EPermittedError subclasses and rendered by the handlers in main.py.
"""

# Routes package init
"""
PawLenx Backend — API Routes Package
======================================

Route Inventory:
    - health.py:        GET    /api/health
    - auth.py:          POST   /api/auth/signup, POST /api/auth/login
    - user.py:          GET    /api/user/dashboard
                        POST   /api/user/pets
                        PUT    /api/user/pets/{id}
                        DELETE /api/user/pets/{id}
    - applications.py:  POST   /api/applications/submit
                        GET    /api/applications

Routes stay thin: parse the request, call a service from the
ServiceContainer, shape the response. Errors are raised, never formatted
here; main.py's exception handlers produce the {"error": ...} envelope.
"""

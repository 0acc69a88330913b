# Services package init
"""
PawLenx Backend — Services Layer
==================================

What:  Business logic between routes (HTTP) and storage (remote host + disk).
How:   Services take an explicit Settings object and their collaborators in
       their constructors; dependencies.build_services() wires one set per app.

Service Inventory:
    - RemoteDocumentStore (abstract): path-addressed JSON/file store with CAS tokens
    - GitHubDocumentStore: concrete store on the GitHub contents API
    - IdentityKeyDeriver: (display name, secret) → collection key
    - SessionTokenService: bearer token issue/verify
    - AuthService: signup, login, profile lookup
    - PetRegistry: per-user pet collection with compare-and-swap retries
    - FileService: upload validation and atomic local staging
    - IngestionPipeline: applications and pet photos, stage + replicate
"""

# Request/response contracts for the HTTP layer

"""HTTP layer of the DaggerGM API: routes, dependencies, middleware and error handlers."""

"""Analysis pipeline: walker, cache, rule engine, scheduler and scorer."""

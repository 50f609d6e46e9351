"""
Startup sanity checks (fail-fast).

Lightweight runtime checks that validate the external dependencies
(MySQL, result cache, LLM provider) during FastAPI startup.
"""

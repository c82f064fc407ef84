"""Quiz grading backend for the course marketplace.

The package exposes the grading engine, the persistence layer and the
FastAPI application. `grading` is the pure scoring core; `services`
coordinates it with repositories and is what the HTTP controllers call.
"""

"""
Feature modules live under this package.

Keep module boundaries clean: each module owns its routes/models/service code,
while reusing platform primitives (viewer resolution, audit, storage, DB session,
watermarking).
"""

"""HTTP routers; each module exposes `router` (plus extra routers where noted)."""

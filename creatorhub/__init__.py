"""creatorhub: backend for a creator monetization platform."""
